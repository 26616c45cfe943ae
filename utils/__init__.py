"""
Utils 模块
core: 配置、数据库、日志、锁；blog: 内容存储与缓存；auth: 用户与令牌；tools: 第三方订阅与小型缓存
"""
