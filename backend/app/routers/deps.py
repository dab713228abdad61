"""路由共用的依赖，测试中通过 app.dependency_overrides 替换"""

from app.core.errors import InvalidArgument
from app.services.asana_client import AsanaClient, asana_client
from app.services.pipeline import SummaryPipeline, summary_pipeline
from app.services.slack_client import SlackClient, slack_client
from app.services.summary_client import SummaryClient, summary_client


def require_user_id(user_id: str | None) -> str:
    if not user_id:
        raise InvalidArgument("userId required")
    return user_id


def get_slack_client() -> SlackClient:
    return slack_client


def get_asana_client() -> AsanaClient:
    return asana_client


def get_summary_client() -> SummaryClient:
    return summary_client


def get_summary_pipeline() -> SummaryPipeline:
    return summary_pipeline
