"""
Small product catalogue used by the end-to-end contract tests.

The provider side mounts the provider-state router so that verification can
seed its repository either in-process or over HTTP.
"""

from typing import Any, Dict, List, Optional

import requests
from fastapi import Depends, FastAPI, Header, HTTPException

from contract_engine.provider import StateHandlerRegistry, create_state_router


class ProductRepository:
    def __init__(self):
        self.products: Dict[int, Dict[str, Any]] = {}

    def clear(self) -> None:
        self.products.clear()

    def add(self, product_id: int, name: str, type_: str) -> None:
        self.products[product_id] = {"id": product_id, "name": name, "type": type_, "version": "v1"}

    def all(self) -> List[Dict[str, Any]]:
        return [self.products[k] for k in sorted(self.products)]


def require_bearer(authorization: Optional[str] = Header(None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return authorization[len("Bearer "):]


def build_states(repository: ProductRepository) -> StateHandlerRegistry:
    states = StateHandlerRegistry()

    @states.state("products exist")
    def products_exist(params):
        """Two credit products."""
        repository.clear()
        repository.add(9, "Gem Visa", "CREDIT_CARD")
        repository.add(10, "28 Degrees", "CREDIT_CARD")

    @states.state("product with ID 10 exists")
    def product_exists(params):
        repository.clear()
        repository.add(int(params["id"]), "28 Degrees", "CREDIT_CARD")

    @states.state("no products exist")
    def no_products(params):
        repository.clear()

    return states


def create_app(repository: ProductRepository, states: StateHandlerRegistry) -> FastAPI:
    app = FastAPI(title="product-service")

    @app.get("/products")
    def list_products(token: str = Depends(require_bearer)) -> Dict[str, Any]:
        return {"products": repository.all()}

    @app.get("/product/{product_id}")
    def get_product(product_id: int) -> Dict[str, Any]:
        product = repository.products.get(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    app.include_router(create_state_router(states))
    return app


class ProductClient:
    """Consumer-side client of the product service."""

    def __init__(self, base_url: str, token: str, session=None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()

    def list_products(self) -> List[Dict[str, Any]]:
        response = self.session.get(
            f"{self.base_url}/products", headers={"Authorization": f"Bearer {self.token}"}, timeout=5
        )
        response.raise_for_status()
        return response.json()["products"]

    def get_product(self, product_id: int) -> Dict[str, Any]:
        response = self.session.get(f"{self.base_url}/product/{product_id}", timeout=5)
        response.raise_for_status()
        return response.json()
