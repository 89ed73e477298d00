import logging
import colorlog
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from config import config
from stockledger.extensions import db, migrate, login_manager
from stockledger.exceptions import StockLedgerError

# 导入 commands 模块，用于注册 CLI 命令
from stockledger import commands


def create_app(config_name='default'):
    """库存台账应用工厂函数"""
    app = Flask(__name__)

    # 1. 加载配置
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # 2. 初始化扩展
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # 3. 配置日志
    configure_logging(app)

    # 4. 注册蓝图 (Blueprints)
    register_blueprints(app)

    # 5. 注册全局错误处理
    register_error_handlers(app)

    # 6. 注册 CLI 命令
    register_commands(app)

    # 模型需在 create_all / 迁移前导入
    from stockledger import models  # noqa: F401

    return app


def register_blueprints(app):
    """注册业务模块蓝图"""
    # 库存台账蓝图
    from stockledger.blueprints.inventory import inventory_bp
    app.register_blueprint(inventory_bp, url_prefix='/api/inventory')


def register_error_handlers(app):
    @app.errorhandler(StockLedgerError)
    def handle_ledger_error(e):
        return jsonify(e.to_dict()), e.code

    @app.errorhandler(401)
    @app.errorhandler(404)
    @app.errorhandler(405)
    def handle_http_error(e):
        return jsonify({
            'success': False,
            'code': e.code,
            'error': e.name,
            'message': e.description,
        }), e.code

    @app.errorhandler(500)
    def internal_server_error(e):
        original = getattr(e, 'original_exception', None)
        if original is not None and not isinstance(original, HTTPException):
            app.logger.error(f'❌ 未处理异常: {original!r}')
        return jsonify({
            'success': False,
            'code': 500,
            'error': 'InternalServerError',
            'message': '服务器内部错误',
        }), 500


def register_commands(app):
    """注册 Flask CLI 命令"""
    app.cli.add_command(commands.status)
    app.cli.add_command(commands.forge)
    app.cli.add_command(commands.reconcile)


def configure_logging(app):
    """配置日志级别；开发模式下额外挂彩色控制台输出"""
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    if app.debug:
        handler = logging.StreamHandler()
        handler.setLevel(logging.DEBUG)

        formatter = colorlog.ColoredFormatter(
            "%(log_color)s[%(asctime)s] %(levelname)-8s%(reset)s %(blue)s%(message)s",
            datefmt="%H:%M:%S",
            reset=True,
            log_colors={
                'DEBUG':    'cyan',
                'INFO':     'green',
                'WARNING':  'yellow',
                'ERROR':    'red',
                'CRITICAL': 'red,bg_white',
            },
            secondary_log_colors={},
            style='%'
        )
        handler.setFormatter(formatter)
        app.logger.addHandler(handler)
