from sqlalchemy.orm import Session
from models.app_config import AppConfig
from schemas.app_config import AppConfigCreate, AppConfigUpdate
from utils.time_utils import now_local

# Audit imports
from crud.audit_log import create_audit_log
from schemas.audit_log import AuditLogCreate
from utils import sqlalchemy_to_dict


# Create a new config entry
def create_config(db: Session, config: AppConfigCreate, user_id: str):
    db_config = AppConfig(name=config.name, value=config.value, created_by=user_id)
    db.add(db_config)
    db.flush()

    create_audit_log(db, AuditLogCreate(
        table_name='app_config',
        record_id=db_config.id,
        changed_by=user_id,
        action='CREATE',
        old_values={},
        new_values=sqlalchemy_to_dict(db_config)
    ))
    db.commit()
    db.refresh(db_config)
    return db_config


# Get config by name (or all configs)
def get_config(db: Session, name: str = None):
    if name:
        return db.query(AppConfig).filter(AppConfig.name == name).first()
    return db.query(AppConfig).order_by(AppConfig.name).all()


def get_config_value(db: Session, name: str, default: str = None):
    db_config = get_config(db, name=name)
    return db_config.value if db_config else default


# Update config by name
def update_config_by_name(db: Session, name: str, config: AppConfigUpdate, user_id: str):
    db_config = db.query(AppConfig).filter(AppConfig.name == name).first()
    if not db_config:
        return None

    old_values = sqlalchemy_to_dict(db_config)
    for field, value in config.model_dump(exclude_unset=True).items():
        setattr(db_config, field, value)
    db_config.updated_at = now_local()
    db_config.updated_by = user_id
    db.flush()

    create_audit_log(db, AuditLogCreate(
        table_name='app_config',
        record_id=db_config.id,
        changed_by=user_id,
        action='UPDATE',
        old_values=old_values,
        new_values=sqlalchemy_to_dict(db_config)
    ))
    db.commit()
    db.refresh(db_config)
    return db_config
