"""
Flask应用主文件
"""
from datetime import timedelta
from email.utils import format_datetime
import logging
from logging.handlers import RotatingFileHandler
import os

from dotenv import load_dotenv
from flask import Flask
from flask import render_template
from flask_jwt_extended import JWTManager

from routes.admin import admin_bp
from routes.admin import auth_bp
from routes.blog import blog_bp
from utils.blog.errors import RenderError
from utils.blog.maintenance import MaintenanceLoop
from utils.blog.store import Blog
from utils.blog.types.common import from_unix
from utils.core.database import ensure_indexes
from utils.core.database import get_db

load_dotenv()


def setup_logging():
    """配置日志系统"""
    log_dir = os.getenv('LOG_DIR', 'log')
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    log_level_env = os.getenv('LOG_LEVEL', 'INFO').upper()
    app_log_level = getattr(logging, log_level_env, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # 清除现有处理器，避免重复日志
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    max_bytes = int(os.getenv('LOG_MAX_BYTES', '10485760'))  # 默认10MB
    backup_count = int(os.getenv('LOG_BACKUP_COUNT', '50'))

    file_handler = RotatingFileHandler(os.path.join(log_dir, 'app.log'), maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8')
    file_handler.setLevel(app_log_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # 控制台处理器 - 仅在非生产环境时启用
    is_production_log = log_level_env == 'INFO'
    if not is_production_log or os.getenv('ENABLE_CONSOLE_LOG', 'false').lower() == 'true':
        console_handler = logging.StreamHandler()
        console_handler.setLevel(app_log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    logging.getLogger('werkzeug').setLevel(logging.INFO)
    logging.getLogger('flask').setLevel(logging.INFO)

    pymongo_level_str = os.getenv('PYMONGO_LOG_LEVEL', 'INFO').upper()
    pymongo_level = getattr(logging, pymongo_level_str, logging.INFO)
    logging.getLogger('pymongo').setLevel(pymongo_level)


def flask_renderer(template_name, context):
    """Blog 使用的模板渲染函数，需要在请求或应用上下文中调用"""
    return render_template(template_name, **context)


def format_date(seconds, fmt="%Y-%m-%d"):
    """模板过滤器：unix 秒 -> 日期字符串"""
    return from_unix(seconds).strftime(fmt)


def format_rfc822(seconds):
    """模板过滤器：RSS 使用的 RFC 822 时间"""
    return format_datetime(from_unix(seconds))


def format_w3c(seconds):
    """模板过滤器：站点地图使用的 W3C 时间"""
    return from_unix(seconds).strftime("%Y-%m-%dT%H:%M:%S+00:00")


def create_app(blog=None, start_maintenance=True):
    """
    应用工厂函数

    blog 为 None 时创建新的 Blog 并从数据库完成启动加载；文章加载失败会直接抛出，进程不会开始服务。
    """
    flask_app = Flask(__name__)

    log_level_app = os.getenv('LOG_LEVEL', 'INFO').upper()
    is_production_mode = log_level_app == 'INFO'

    flask_app.config['MAX_CONTENT_LENGTH'] = int(os.getenv('MAX_CONTENT_LENGTH', '1048576'))  # 默认1MB

    # JWT配置 - 生产环境安全检查
    jwt_secret = os.getenv("JWT_SECRET_KEY")
    if is_production_mode and (not jwt_secret or jwt_secret == "super-secret"):
        raise ValueError("JWT_SECRET_KEY must be set to a secure value in production")

    flask_app.config["JWT_SECRET_KEY"] = jwt_secret or "super-secret"
    flask_app.config["JWT_TOKEN_LOCATION"] = ["cookies"]
    flask_app.config["JWT_ACCESS_COOKIE_PATH"] = "/"
    flask_app.config["JWT_COOKIE_SECURE"] = is_production_mode

    if is_production_mode:
        flask_app.config["JWT_COOKIE_CSRF_PROTECT"] = os.getenv('JWT_CSRF_PROTECT', 'true').lower() == 'true'
    else:
        flask_app.config["JWT_COOKIE_CSRF_PROTECT"] = False

    flask_app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(days=int(os.getenv('JWT_EXPIRES_DAYS', '7')))

    JWTManager(flask_app)

    flask_app.add_template_filter(format_date, "date")
    flask_app.add_template_filter(format_rfc822, "rfc822")
    flask_app.add_template_filter(format_w3c, "w3c")

    flask_app.register_blueprint(admin_bp)
    flask_app.register_blueprint(auth_bp)
    flask_app.register_blueprint(blog_bp)

    register_routes(flask_app)
    register_error_handlers(flask_app)

    if blog is None:
        blog = Blog(renderer=flask_renderer)
        db = get_db()
        with flask_app.app_context():
            if ensure_indexes(db):
                logging.info("数据库索引已就绪")
            else:
                logging.warning("数据库索引未能创建或确保，请检查日志")
            post_count = blog.startup(db)
        logging.info(f"博客数据加载完成，共 {post_count} 篇文章")

    flask_app.extensions["blog"] = blog

    if start_maintenance:
        maintenance = MaintenanceLoop(blog)
        maintenance.start()
        flask_app.extensions["blog_maintenance"] = maintenance

    return flask_app


def register_routes(flask_app):
    """注册应用级路由"""

    @flask_app.route('/health')
    def health_check():
        """健康检查端点"""
        try:
            db = get_db()
            if db is None:
                return {"status": "unhealthy", "database": "disconnected"}, 503

            db.client.admin.command('ismaster')
            return {"status": "healthy", "database": "connected"}, 200
        except Exception as e:
            logging.error(f"健康检查失败: {e}")
            return {"status": "unhealthy", "error": str(e)}, 503


def register_error_handlers(flask_app):
    """注册错误处理器"""

    @flask_app.errorhandler(RenderError)
    def render_failed(error):
        logging.error(f"页面渲染失败: {error}")
        return "Internal Server Error", 500, {"Content-Type": "text/html; charset=utf-8"}

    @flask_app.errorhandler(500)
    def internal_error(_error):
        logging.error(f"Internal server error: {_error}")
        return {"error": "Internal Server Error", "message": "An internal error occurred"}, 500

    @flask_app.errorhandler(413)
    def request_entity_too_large(_error):
        return {"error": "Request Entity Too Large", "message": "Request size exceeds limit"}, 413


def init_app():
    """初始化日志"""
    setup_logging()
    logging.debug("日志系统配置完成。")
    logging.info("应用启动中...")


if __name__ == '__main__':
    init_app()
    app = create_app()

    if os.getenv('FLASK_APP_PORT') and os.getenv('FLASK_APP_PORT').isdigit():
        app_port = int(os.getenv('FLASK_APP_PORT'))
    else:
        logging.warning("FLASK_APP_PORT未设置，使用默认端口5000")
        app_port = 5000

    log_level_startup = os.getenv('LOG_LEVEL', 'INFO').upper()
    is_production_startup = log_level_startup == 'INFO'
    # 关闭 reloader，避免维护线程和启动加载执行两次
    app.run(debug=not is_production_startup, host='0.0.0.0', port=app_port, threaded=True, use_reloader=False)
