from app.schemas.submission import CamelModel


class VerifyUserRequest(CamelModel):
    user_id: str = ""
    action: str = ""
    admin_id: str = ""


class ReconcileRequest(CamelModel):
    admin_id: str = ""
    max_age_hours: int | None = None
