"""
收银台支付订单服务入口（FastAPI）

组合根：读取配置、装配网关与订单服务，注册中间件和路由。
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import AccessLogMiddleware, RequestIDMiddleware
from api.routes import payment_orders as payment_order_routes
from application.services.payment_order_service import PaymentOrderService
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from core.settings import get_payment_settings
from infrastructure.external.payments import build_payment_gateways
from infrastructure.repositories.order_snapshot_sink import InMemoryOrderSnapshotSink


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


def build_payment_order_service() -> PaymentOrderService:
    """组合根：配置只在这里读取一次，然后显式注入。"""
    payment_settings = get_payment_settings()
    return PaymentOrderService(
        build_payment_gateways(payment_settings),
        payment_settings,
        sink=InMemoryOrderSnapshotSink(),
    )


def create_app(service: Optional[PaymentOrderService] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """启动时装配订单服务；关闭时停止所有轮询并释放网关连接"""
        app.state.payment_order_service = service or build_payment_order_service()
        logger.info(
            "application_started",
            providers=app.state.payment_order_service.providers,
            environment=settings.ENVIRONMENT,
        )
        yield
        await app.state.payment_order_service.aclose()
        logger.info("application_shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="PIX / boleto payment order lifecycle for the point of sale",
    )

    # 中间件从下往上执行：RequestID 最先，为访问日志提供 request_id
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(payment_order_routes.router, prefix=settings.API_V1_PREFIX)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """健康检查：附带已注册的网关"""
        service = getattr(request.app.state, "payment_order_service", None)
        return success_response(
            data={"status": "healthy", "version": settings.VERSION, "providers": service.providers if service else []}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_config=None,
    )
