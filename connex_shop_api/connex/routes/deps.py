from __future__ import annotations

from fastapi import Request

from ..services.orders import OrderLifecycle


def get_engine(request: Request) -> OrderLifecycle:
    return request.app.state.engine


def get_cart_store(request: Request):
    return request.app.state.cart_store
