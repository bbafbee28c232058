from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from app.feedback.db import db_session
from app.feedback.modules.accounts.service import change_role, delete_user, list_users
from app.feedback.rbac import Action, current_principal, require_action
from app.feedback.schemas import user_to_dict

bp = Blueprint("accounts", __name__)


@bp.get("")
@require_action(Action.USER_LIST)
def users_list():
    s = db_session()
    return jsonify([user_to_dict(u) for u in list_users(s)])


@bp.put("/change/<role>/<int:user_id>")
@require_action(Action.USER_CHANGE_ROLE)
def users_change_role(role: str, user_id: int):
    s = db_session()
    user = change_role(s, user_id, role.strip(), actor=current_principal())
    s.commit()
    return jsonify(user_to_dict(user))


@bp.delete("/<int:user_id>")
@require_action(Action.USER_DELETE)
def users_delete(user_id: int):
    s = db_session()
    policy = current_app.config["USER_DELETE_POLICY"]
    purged = delete_user(s, user_id, policy=policy, actor=current_principal())
    s.commit()
    return jsonify({"message": "User deleted", **purged})
