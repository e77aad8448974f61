from __future__ import annotations

import logging

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute
from starlette.requests import Request

from app.request_context import current_endpoint


logger = logging.getLogger('app.request')


class EndpointNameRoute(APIRoute):
    """Tags every query and log line issued by a handler with its route label."""

    def get_route_handler(self):
        original_handler = super().get_route_handler()

        async def custom_handler(request: Request):
            endpoint_label = f"{request.method} {self.path}"
            token = current_endpoint.set(endpoint_label)
            try:
                return await original_handler(request)
            except (HTTPException, RequestValidationError):
                raise
            except Exception:
                logger.exception('request_unhandled_error endpoint=%s', endpoint_label)
                raise
            finally:
                current_endpoint.reset(token)

        return custom_handler
