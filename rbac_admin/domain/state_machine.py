from __future__ import annotations

from enum import StrEnum


class LoginStage(StrEnum):
    CREDENTIALS_RECEIVED = "CREDENTIALS_RECEIVED"
    USER_RESOLVED = "USER_RESOLVED"
    PASSWORD_VERIFIED = "PASSWORD_VERIFIED"
    ACTIVE_CHECKED = "ACTIVE_CHECKED"
    ROLES_RESOLVED = "ROLES_RESOLVED"
    PERMISSIONS_RESOLVED = "PERMISSIONS_RESOLVED"
    TOKEN_ISSUED = "TOKEN_ISSUED"


ALLOWED_TRANSITIONS: dict[LoginStage, set[LoginStage]] = {
    LoginStage.CREDENTIALS_RECEIVED: {LoginStage.USER_RESOLVED},
    LoginStage.USER_RESOLVED: {LoginStage.PASSWORD_VERIFIED},
    LoginStage.PASSWORD_VERIFIED: {LoginStage.ACTIVE_CHECKED},
    LoginStage.ACTIVE_CHECKED: {LoginStage.ROLES_RESOLVED},
    LoginStage.ROLES_RESOLVED: {LoginStage.PERMISSIONS_RESOLVED},
    LoginStage.PERMISSIONS_RESOLVED: {LoginStage.TOKEN_ISSUED},
    LoginStage.TOKEN_ISSUED: set(),
}


def can_transition(source: LoginStage, target: LoginStage) -> bool:
    return target in ALLOWED_TRANSITIONS.get(source, set())
