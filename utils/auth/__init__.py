"""
认证模块
包含后台用户查询、密码校验和访问令牌
"""
