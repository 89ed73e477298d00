from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager

# 初始化扩展对象 (暂不绑定 app)
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()

# JSON API：未识别调用方时直接返回 401，不做页面跳转
login_manager.login_view = None


@login_manager.request_loader
def load_actor_from_request(request):
    """
    Flask-Login 请求加载回调
    身份认证由上游网关完成，这里只读取其写入的可信请求头
    """
    from stockledger.models.auth import Actor

    actor_id = request.headers.get(current_app.config['ACTOR_HEADER'], '').strip()
    if not actor_id:
        return None
    company_id = request.headers.get(current_app.config['COMPANY_HEADER'], '').strip() or None
    return Actor(actor_id, company_id=company_id)
