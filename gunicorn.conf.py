# Gunicorn配置文件
# 用于生产环境部署

import os


# 环境变量 - 自动从 .env 文件读取所有变量
def load_all_env_vars():
    """从 .env 文件加载所有环境变量到 raw_env"""
    env_vars = []
    if os.path.exists('.env'):
        with open('.env', 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                # 跳过注释和空行
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    value = value.strip().strip('"').strip("'")
                    env_vars.append(f"{key.strip()}={value}")
    return env_vars


raw_env = load_all_env_vars()

# 应用入口：每个 worker 进程各自构建 Blog 并启动维护线程
wsgi_app = "app:create_app()"

app_port = os.getenv('FLASK_APP_PORT', '5070')
bind = f"0.0.0.0:{app_port}"
backlog = 2048

# 内存缓存按进程独立，worker 越多缓存副本越多
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = "gthread"
threads = int(os.getenv('GUNICORN_THREADS', '8'))
timeout = 30
keepalive = 2

max_requests = 1000
max_requests_jitter = 50
# 维护线程不能在 fork 之前启动
preload_app = False

# 日志
accesslog = "log/gunicorn_access.log"
errorlog = "log/gunicorn_error.log"
loglevel = "info"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'
capture_output = False

daemon = False
pidfile = "gunicorn.pid"

graceful_timeout = 30

proc_name = "inkblog"


def post_fork(server, worker):
    """worker 加载应用之前初始化应用日志"""
    from app import setup_logging
    setup_logging()
    server.log.info(f"worker {worker.pid} 日志系统已配置")
