from flask_login import UserMixin


class Actor(UserMixin):
    """
    操作人 (不落库)
    用户与租户的解析在上游完成，库存台账只把 id 当作不透明标识
    """

    def __init__(self, actor_id, company_id=None):
        self.id = str(actor_id)
        self.company_id = company_id

    def __repr__(self):
        return f'<Actor {self.id} company={self.company_id}>'
