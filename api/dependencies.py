"""
API依赖项 - 为 webhook 入口组装工作单元、Stripe 网关与锁

测试中通过 app.dependency_overrides 替换这些依赖。
"""
from application.dtos.webhooks import ProcessorInfo, WebhookProcessingConfig
from application.ports.locks import LockManager
from application.ports.stripe_gateway import StripeGateway
from core.settings import payment_settings
from domain.common.exceptions import ProcessorNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.cache import get_redis_client
from infrastructure.external.payments import get_stripe_gateway
from infrastructure.locks import get_lock_manager
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


async def get_uow() -> AbstractUnitOfWork:
    """未进入的工作单元，由路由在处理期间打开"""
    return SQLAlchemyUnitOfWork()


async def get_gateway(processor_id: int) -> StripeGateway:
    return get_stripe_gateway(processor_id)


async def get_processor_info(processor_id: int) -> ProcessorInfo:
    processor = payment_settings.stripe.get_processor(processor_id)
    if processor is None:
        raise ProcessorNotFoundException(processor_id)
    return ProcessorInfo(id=processor.id, name=processor.name, is_test=processor.is_test)


async def get_locks() -> LockManager:
    return get_lock_manager(get_redis_client())


async def get_webhook_config() -> WebhookProcessingConfig:
    return WebhookProcessingConfig.from_settings(payment_settings.webhook)
