"""
博客模块
包含内存数据存储、缓存、浏览记录缓冲和后台维护任务
"""
