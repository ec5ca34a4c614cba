"""Barcode -> ingredient list lookup against Open Food Facts.

The product database is public and unauthenticated. A found product with an
empty ingredient list is reported separately from an unknown barcode so the
caller can suggest typing the list in by hand.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ..config import DEFAULT_PRODUCT_DB_URL
from ..logging import get_logger
from .errors import BarcodeLookupError, NoIngredientsError, ProductNotFoundError

LOG = get_logger("client-barcode")

# EAN-8, UPC-A, EAN-13 and GTIN-14 are all 8-14 digits.
BARCODE_RE = re.compile(r"^\d{8,14}$")
INGREDIENT_FIELDS = (
    "ingredients_text",
    "ingredients_text_en",
    "ingredients_text_with_allergens",
    "ingredients_text_debug",
)
LOOKUP_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class ProductInfo:
    barcode: str
    name: str
    ingredients: str
    brand: str = ""
    image: Optional[str] = None


def normalize_barcode(raw: str) -> str:
    """Strip spaces and dashes a human might type; raise when what is left is not a barcode."""
    code = re.sub(r"[\s-]", "", raw or "")
    if not BARCODE_RE.match(code):
        raise BarcodeLookupError(f"Invalid barcode: {raw!r}. Expected 8 to 14 digits.")
    return code


def clean_ingredients(text: str) -> str:
    # the database marks allergens as _milk_; drop the markers and collapse whitespace
    return re.sub(r"\s+", " ", text.replace("_", "")).strip()


def ingredients_of(product: Dict[str, Any]) -> str:
    for field in INGREDIENT_FIELDS:
        value = product.get(field)
        if isinstance(value, str) and value.strip():
            return clean_ingredients(value)
    return ""


class ProductLookup:
    def __init__(
        self,
        base_url: str = DEFAULT_PRODUCT_DB_URL,
        *,
        timeout: int = LOOKUP_TIMEOUT_SECONDS,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base = base_url.rstrip("/")
        self.timeout = int(timeout)
        self.http = http or requests.Session()

    def lookup(self, barcode: str) -> ProductInfo:
        code = normalize_barcode(barcode)
        url = f"{self.base}/api/v0/product/{code}.json"
        LOG.info(f"Looking up product: {code}")
        try:
            r = self.http.get(url, headers={"Accept": "application/json"}, timeout=self.timeout)
        except requests.RequestException as e:
            LOG.error(f"Product lookup failed: {e}")
            raise BarcodeLookupError() from e
        if r.status_code == 404:
            raise self._not_found(code)
        if r.status_code >= 400:
            LOG.error(f"Product database HTTP {r.status_code}")
            raise BarcodeLookupError()
        try:
            data = r.json()
        except ValueError as e:
            LOG.error("Product database returned a non-JSON body")
            raise BarcodeLookupError() from e

        if not isinstance(data, dict) or data.get("status") != 1 or not isinstance(data.get("product"), dict):
            raise self._not_found(code)

        product = data["product"]
        name = product.get("product_name") or ""
        ingredients = ingredients_of(product)
        if not ingredients:
            LOG.warning(f"Product {code} has no ingredient list")
            raise NoIngredientsError(
                f'Product found: "{name or "Unknown"}" but no ingredients listed in the database. '
                "Try entering ingredients manually."
            )
        info = ProductInfo(
            barcode=code,
            name=name or "Unknown Product",
            ingredients=ingredients,
            brand=product.get("brands") or "",
            image=product.get("image_front_small_url") or product.get("image_url") or None,
        )
        LOG.info(f"Found product {code}: {info.name} ({len(ingredients)} chars of ingredients)")
        return info

    @staticmethod
    def _not_found(code: str) -> ProductNotFoundError:
        LOG.info(f"Product not found for barcode {code}")
        return ProductNotFoundError(
            f"Product not found for barcode: {code}. This product may not be in the Open Food Facts database. "
            "Try a different product or enter ingredients manually."
        )
