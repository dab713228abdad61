"""OAuth 授权链接与 state 编解码"""

import base64
import binascii
import json
from urllib.parse import urlencode

from app.core.config import settings
from app.core.errors import InvalidArgument

SLACK_AUTHORIZE_URL = "https://slack.com/oauth/v2/authorize"
ASANA_AUTHORIZE_URL = "https://app.asana.com/-/oauth_authorize"

SLACK_SCOPES = [
    "channels:history",
    "channels:read",
    "chat:write",
    "groups:history",
    "groups:read",
    "users:read",
]


def encode_state(user_id: str) -> str:
    return base64.b64encode(json.dumps({"userId": user_id}).encode("utf-8")).decode("ascii")


def decode_state(state: str) -> str:
    """返回 state 中的 userId，格式不对时抛 InvalidArgument"""
    try:
        payload = json.loads(base64.b64decode(state, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidArgument("Invalid OAuth state") from exc

    user_id = payload.get("userId") if isinstance(payload, dict) else None
    if not user_id:
        raise InvalidArgument("Invalid OAuth state")
    return str(user_id)


def slack_authorize_url(user_id: str) -> str:
    query = urlencode(
        {
            "client_id": settings.slack_client_id or "",
            "scope": ",".join(SLACK_SCOPES),
            "redirect_uri": settings.slack_redirect_uri,
            "state": encode_state(user_id),
        }
    )
    return f"{SLACK_AUTHORIZE_URL}?{query}"


def asana_authorize_url(user_id: str) -> str:
    query = urlencode(
        {
            "client_id": settings.asana_client_id or "",
            "redirect_uri": settings.asana_redirect_uri,
            "response_type": "code",
            "state": encode_state(user_id),
        }
    )
    return f"{ASANA_AUTHORIZE_URL}?{query}"


def integrations_redirect(**params: str) -> str:
    """回到前端的集成页面，带上 success / error 参数"""
    return f"{settings.frontend_url}/app/integrations?{urlencode(params)}"
