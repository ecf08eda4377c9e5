"""Web 路由模块 - Blueprint 集合

拆分说明:
- content_bp.py: 文件内容与目录列表 (2 routes)
"""
