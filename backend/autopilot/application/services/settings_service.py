import logging

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from autopilot.domain.channels import get_channel_spec
from autopilot.domain.models.content_piece import ContentType
from autopilot.domain.models.setting import Setting

logger = logging.getLogger(__name__)

TRUE_VALUE = "true"
FALSE_VALUE = "false"


def get_setting_value(db: Session, *, key: str) -> str | None:
    return db.execute(select(Setting.value).where(Setting.key == key)).scalar_one_or_none()


def upsert_setting(db: Session, *, key: str, value: str) -> None:
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        insert_stmt = postgresql.insert(Setting)
    elif dialect_name == "sqlite":
        insert_stmt = sqlite.insert(Setting)
    else:
        db.merge(Setting(key=key, value=value))
        return
    db.execute(
        insert_stmt.values(key=key, value=value).on_conflict_do_update(
            index_elements=[Setting.key],
            set_={"value": value, "updated_at": func.now()},
        )
    )


def is_channel_enabled(db: Session, *, content_type: ContentType | str) -> bool:
    # Always read from the store: a stale "enabled" here means an unwanted publish.
    spec = get_channel_spec(content_type)
    return get_setting_value(db, key=spec.setting_key) == TRUE_VALUE


def set_channel_enabled(db: Session, *, content_type: ContentType | str, enabled: bool) -> bool:
    spec = get_channel_spec(content_type)
    upsert_setting(db, key=spec.setting_key, value=TRUE_VALUE if enabled else FALSE_VALUE)
    logger.info("channel_posting_toggled content_type=%s enabled=%s", spec.content_type.value, enabled)
    return enabled
