"""
API routes.

Every handler and helper opens a span named after itself and logs through
the handle's trace-correlated logger. Delays are fixed sleeps standing in for
database and payment calls.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from api.deps import get_telemetry
from api.models import (
    CreateUserRequest,
    HealthResponse,
    OrderItem,
    OrderRequest,
    OrderResponse,
    User,
)
from config.settings import APP_VERSION
from errors.exceptions import (
    database_unavailable,
    internal_error,
    invalid_request,
    request_timeout,
    resource_not_found,
    validation_error,
)
from telemetry.lifecycle import TelemetryHandle

router = APIRouter()

# Simulated latencies, in seconds
DATABASE_LOOKUP_DELAY = 0.05
PAYMENT_DELAY = 0.1
INVENTORY_DELAY = 0.075
SLOW_STEP_DELAY = 0.2
SLOW_STEP_COUNT = 5
USERS_TABLE_DELAY = 0.08
ORDERS_TABLE_DELAY = 0.12
JOIN_DELAY = 0.15
SIMULATED_TIMEOUT_DELAY = 30.0

ENDPOINTS = [
    "GET /health",
    "POST /api/users",
    "GET /api/users/:id",
    "POST /api/orders",
    "GET /api/orders/:id",
    "GET /api/simulate-error?error_type=<type>",
    "GET /api/slow-operation",
    "GET /api/database-query",
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
async def root(telemetry: TelemetryHandle = Depends(get_telemetry)):
    """List the available endpoints."""
    with telemetry.span("root"):
        telemetry.get_logger(__name__).info("Root endpoint called")
        return {
            "message": "Datadog OpenTelemetry Demo API",
            "version": APP_VERSION,
            "endpoints": ENDPOINTS,
        }


@router.get("/health", response_model=HealthResponse)
async def health(telemetry: TelemetryHandle = Depends(get_telemetry)):
    with telemetry.span("health"):
        telemetry.get_logger(__name__).info("Health check called")
        return HealthResponse(
            status="healthy",
            version=telemetry.settings.service_version,
            timestamp=_now(),
        )


@router.post("/api/users", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: CreateUserRequest,
    telemetry: TelemetryHandle = Depends(get_telemetry),
):
    logger = telemetry.get_logger(__name__)
    with telemetry.span("create_user"):
        logger.info("Creating new user", user_name=payload.name, user_email=payload.email)

        if not payload.name:
            logger.warning("User creation failed: empty name")
            raise validation_error("Name cannot be empty", details={"field": "name"})

        user = User(
            id=str(uuid.uuid4()),
            name=payload.name,
            email=payload.email,
            created_at=_now(),
        )

        logger.info("User created successfully", user_id=user.id)
        return user


@router.get("/api/users/{user_id}", response_model=User)
async def get_user(user_id: str, telemetry: TelemetryHandle = Depends(get_telemetry)):
    logger = telemetry.get_logger(__name__)
    with telemetry.span("get_user", {"user_id": user_id}):
        logger.info("Fetching user", user_id=user_id)

        user = await fetch_user_from_database(telemetry, user_id)
        if user is None:
            logger.warning("User not found", user_id=user_id)
            raise resource_not_found("User not found", details={"user_id": user_id})

        logger.debug("User found", user_id=user_id)
        return user


async def fetch_user_from_database(telemetry: TelemetryHandle, user_id: str) -> Optional[User]:
    with telemetry.span("fetch_user_from_database", {"user_id": user_id}):
        await asyncio.sleep(DATABASE_LOOKUP_DELAY)
        telemetry.get_logger(__name__).debug("Querying database for user", user_id=user_id)

        return User(
            id=user_id,
            name="John Doe",
            email="john.doe@example.com",
            created_at=_now(),
        )


@router.post("/api/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderRequest,
    telemetry: TelemetryHandle = Depends(get_telemetry),
):
    logger = telemetry.get_logger(__name__)
    with telemetry.span("create_order"):
        logger.info(
            "Creating new order",
            user_id=payload.user_id,
            item_count=len(payload.items),
        )

        if not payload.items:
            logger.warning("Order creation failed: no items")
            raise validation_error(
                "Order must contain at least one item", details={"field": "items"}
            )

        total_amount = sum(item.price * item.quantity for item in payload.items)

        await process_payment(telemetry, payload.user_id, total_amount)
        await check_inventory(telemetry, payload.items)

        order = OrderResponse(
            order_id=str(uuid.uuid4()),
            user_id=payload.user_id,
            total_amount=total_amount,
            status="confirmed",
            created_at=_now(),
        )

        logger.info(
            "Order created successfully",
            order_id=order.order_id,
            total_amount=total_amount,
        )
        return order


async def process_payment(telemetry: TelemetryHandle, user_id: str, amount: float) -> None:
    logger = telemetry.get_logger(__name__)
    with telemetry.span("process_payment", {"user_id": user_id, "amount": amount}):
        logger.info("Processing payment", user_id=user_id, amount=amount)

        # Payment gateway call
        await asyncio.sleep(PAYMENT_DELAY)

        logger.debug("Payment processed successfully")


async def check_inventory(telemetry: TelemetryHandle, items: List[OrderItem]) -> None:
    logger = telemetry.get_logger(__name__)
    with telemetry.span("check_inventory", {"item_count": len(items)}):
        logger.info("Checking inventory", item_count=len(items))

        await asyncio.sleep(INVENTORY_DELAY)

        logger.debug("Inventory check completed")


@router.get("/api/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, telemetry: TelemetryHandle = Depends(get_telemetry)):
    logger = telemetry.get_logger(__name__)
    with telemetry.span("get_order", {"order_id": order_id}):
        logger.info("Fetching order", order_id=order_id)

        await asyncio.sleep(DATABASE_LOOKUP_DELAY)

        order = OrderResponse(
            order_id=order_id,
            user_id="user-123",
            total_amount=99.99,
            status="shipped",
            created_at=_now(),
        )

        logger.debug("Order found", order_id=order_id)
        return order


@router.get("/api/simulate-error")
async def simulate_error(
    error_type: str = "",
    telemetry: TelemetryHandle = Depends(get_telemetry),
):
    """
    Fail on purpose. error_type selects the failure: timeout, server,
    database, or anything else for a generic bad request.
    """
    logger = telemetry.get_logger(__name__)
    error_type = error_type or "generic"

    with telemetry.span("simulate_error", {"error_type": error_type}):
        logger.error("Simulating error", error_type=error_type)

        if error_type == "timeout":
            logger.warning("Simulating timeout error")
            await asyncio.sleep(SIMULATED_TIMEOUT_DELAY)
            raise request_timeout()
        if error_type == "server":
            logger.error("Simulating internal server error")
            raise internal_error()
        if error_type == "database":
            logger.error("Simulating database connection error")
            raise database_unavailable()

        logger.error("Simulating generic error")
        raise invalid_request()


@router.get("/api/slow-operation")
async def slow_operation(telemetry: TelemetryHandle = Depends(get_telemetry)):
    logger = telemetry.get_logger(__name__)
    with telemetry.span("slow_operation"):
        logger.info("Starting slow operation")

        for step in range(1, SLOW_STEP_COUNT + 1):
            logger.debug("Processing step", step=step)
            await asyncio.sleep(SLOW_STEP_DELAY)

        logger.info("Slow operation completed")
        return {
            "message": "Slow operation completed",
            "duration_ms": int(SLOW_STEP_COUNT * SLOW_STEP_DELAY * 1000),
        }


@router.get("/api/database-query")
async def database_query(telemetry: TelemetryHandle = Depends(get_telemetry)):
    logger = telemetry.get_logger(__name__)
    with telemetry.span("database_query"):
        logger.info("Executing database query")

        await _query_step(telemetry, "query_users_table", "Querying users table", USERS_TABLE_DELAY)
        await _query_step(telemetry, "query_orders_table", "Querying orders table", ORDERS_TABLE_DELAY)
        await _query_step(telemetry, "join_user_orders", "Joining user and order data", JOIN_DELAY)

        logger.info("Database query completed")
        return {"message": "Database query completed", "results": 42}


async def _query_step(telemetry: TelemetryHandle, name: str, message: str, delay: float) -> None:
    with telemetry.span(name):
        telemetry.get_logger(__name__).debug(message)
        await asyncio.sleep(delay)
