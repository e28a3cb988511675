"""
社区平台后台 - 审核操作与审计管线
"""

__version__ = "0.1.0"
