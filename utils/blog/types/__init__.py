"""
博客实体类型及其数据库读写函数
"""
