import os
import pkgutil
from importlib import import_module

from fastapi import APIRouter

from wsgateway.logging import logger


def collect_subrouters() -> APIRouter:
    """
    Collects the HTTP routers of the application.

    Iterates the `api/http` directory, imports each module and adds its
    `router` to the main `APIRouter` instance, which is returned.
    """
    main_router: APIRouter = APIRouter()

    app_dir = os.path.dirname(__file__)
    app_name = os.path.basename(app_dir)

    for _, module, _ in pkgutil.iter_modules([f"{app_dir}/api/http"]):
        api = import_module(f".{module}", package=f"{app_name}.api.http")
        main_router.include_router(api.router)
        logger.debug(f'Register "{module}" api')

    return main_router
