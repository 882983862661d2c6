import json
from typing import Any, TypeVar

import httpx
from opentelemetry import trace
from opentelemetry.trace import SpanKind
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from menu_modifiers.config import settings
from menu_modifiers.exceptions import ConflictError, NetworkError, NotFoundError, ValidationError
from menu_modifiers.logger import get_logger
from menu_modifiers.models import DeletePreview
from menu_modifiers.schemas.store import (
    BulkReorder,
    CreateGroup,
    CreateModifier,
    DuplicateGroup,
    ReparentGroup,
    SortOrderEntry,
    StoreGroup,
    StoreIngredient,
    StoreModifier,
    UpdateGroup,
    UpdateModifier,
)
from menu_modifiers.utils.enums import Entity

logger = get_logger("store_client")
tracer = trace.get_tracer("menu-modifiers")

M = TypeVar("M", bound=BaseModel)


class MenuStoreClient:
    """Async client of the menu entity store, scoped to one menu item.

    Every response body is ``{"data": ...}`` on success and ``{"error": "..."}``
    otherwise; failures are raised as ``ModifierEngineError`` subclasses.
    """

    def __init__(
        self,
        item_id: str,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.item_id = item_id
        self.base_url = base_url or settings.STORE_URL
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.DEFAULT_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "MenuStoreClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def groups_url(self) -> str:
        return f"items/{self.item_id}/modifier-groups"

    def group_url(self, group_id: str) -> str:
        return f"{self.groups_url}/{group_id}"

    def modifiers_url(self, group_id: str) -> str:
        return f"{self.group_url(group_id)}/modifiers"

    async def list_groups(self) -> list[StoreGroup]:
        data = await self._request("GET", self.groups_url, "list modifier groups")
        return [self._parse(StoreGroup, group) for group in self._parse_list(data)]

    async def create_group(self, group: CreateGroup) -> StoreGroup:
        logger.debug("group for create", item_id=self.item_id, group=group.model_dump())
        data = await self._request("POST", self.groups_url, "create modifier group", payload=group)
        return self._parse(StoreGroup, data)

    async def duplicate_group(self, group_id: str) -> StoreGroup:
        logger.debug("group for duplicate", item_id=self.item_id, group_id=group_id)
        data = await self._request(
            "POST",
            self.groups_url,
            "duplicate modifier group",
            payload=DuplicateGroup(duplicate_from_group_id=group_id),
            group_id=group_id,
        )
        return self._parse(StoreGroup, data)

    async def reparent_group(self, group_id: str, target_parent_modifier_id: str | None) -> None:
        logger.debug(
            "group for reparent",
            item_id=self.item_id,
            group_id=group_id,
            target_parent_modifier_id=target_parent_modifier_id,
        )
        await self._request(
            "PUT",
            self.groups_url,
            "reparent modifier group",
            payload=ReparentGroup(group_id=group_id, target_parent_modifier_id=target_parent_modifier_id),
            group_id=group_id,
        )

    async def bulk_reorder_groups(self, sort_orders: list[SortOrderEntry]) -> None:
        logger.debug("groups for reorder", item_id=self.item_id, sort_orders=[i.model_dump() for i in sort_orders])
        await self._request("PATCH", self.groups_url, "reorder modifier groups", payload=BulkReorder(sort_orders=sort_orders))

    async def update_group(self, group_id: str, patch: UpdateGroup) -> StoreGroup:
        logger.debug("group for update", item_id=self.item_id, group_id=group_id, patch=patch.model_dump(exclude_unset=True))
        data = await self._request("PUT", self.group_url(group_id), "update modifier group", payload=patch, group_id=group_id)
        return self._parse(StoreGroup, data)

    async def preview_delete(self, group_id: str) -> DeletePreview:
        data = await self._request(
            "DELETE",
            self.group_url(group_id),
            "preview modifier group delete",
            params={"preview": "true"},
            group_id=group_id,
        )
        return self._parse(DeletePreview, data)

    async def delete_group(self, group_id: str) -> DeletePreview | None:
        logger.debug("group for delete", item_id=self.item_id, group_id=group_id)
        data = await self._request("DELETE", self.group_url(group_id), "delete modifier group", group_id=group_id)
        return self._parse(DeletePreview, data) if isinstance(data, dict) and "groupCount" in data else None

    async def create_modifier(self, group_id: str, modifier: CreateModifier) -> StoreModifier:
        logger.debug("modifier for create", item_id=self.item_id, group_id=group_id, modifier=modifier.model_dump())
        data = await self._request("POST", self.modifiers_url(group_id), "create modifier", payload=modifier, group_id=group_id)
        return self._parse(StoreModifier, data)

    async def update_modifier(self, group_id: str, patch: UpdateModifier) -> StoreModifier:
        logger.debug(
            "modifier for update",
            item_id=self.item_id,
            group_id=group_id,
            patch=patch.model_dump(exclude_unset=True),
        )
        data = await self._request("PUT", self.modifiers_url(group_id), "update modifier", payload=patch, group_id=group_id)
        return self._parse(StoreModifier, data)

    async def delete_modifier(self, group_id: str, modifier_id: str) -> None:
        logger.debug("modifier for delete", item_id=self.item_id, group_id=group_id, modifier_id=modifier_id)
        await self._request(
            "DELETE",
            self.modifiers_url(group_id),
            "delete modifier",
            params={"modifierId": modifier_id},
            group_id=group_id,
        )

    async def get_ingredients(self) -> list[StoreIngredient]:
        data = await self._request("GET", "ingredients", "list ingredients")
        return [self._parse(StoreIngredient, ingredient) for ingredient in self._parse_list(data)]

    async def _request(
        self,
        method: str,
        url: str,
        span_name: str,
        payload: Any = None,
        params: dict[str, str] | None = None,
        group_id: str | None = None,
    ) -> Any:
        body = None
        if payload is not None:
            partial = isinstance(payload, (UpdateGroup, UpdateModifier))
            body = payload.model_dump(mode="json", by_alias=True, exclude_unset=partial)

        with tracer.start_as_current_span(span_name, kind=SpanKind.CLIENT) as span:
            span.set_attribute("item.id", self.item_id)
            if group_id is not None:
                span.set_attribute("group.id", group_id)
            if body is not None:
                span.set_attribute("request", json.dumps(body))

            try:
                response = await self._client.request(method, url, json=body, params=params)
            except httpx.RequestError as e:
                logger.warning("Store is not responding", method=method, url=url, error=str(e))
                raise NetworkError(f"{method} {url} failed: {e}") from e

            span.set_attribute("http.status_code", response.status_code)
            if not response.is_success:
                self._raise_for_status(response, method, url, group_id)
            if not response.content:
                return None

            try:
                envelope = response.json()
            except ValueError as e:
                logger.warning("Store answered with a non-JSON body", method=method, url=url, content=response.content)
                raise NetworkError(f"{method} {url} returned a non-JSON body", status_code=response.status_code) from e
            if not isinstance(envelope, dict):
                logger.warning("Store answered without an envelope", method=method, url=url, content=response.content)
                raise NetworkError(f"{method} {url} returned an unexpected body", status_code=response.status_code)
            return envelope.get("data")

    def _parse(self, model: type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("Store response does not match", model=model.__name__, data=data, error=str(e))
            raise NetworkError(f"Unexpected store response for {model.__name__}: {e}") from e

    def _parse_list(self, data: Any) -> list:
        if not isinstance(data, list):
            logger.warning("Store response is not a list", data=data)
            raise NetworkError(f"Unexpected store response: expected a list, got {type(data).__name__}")
        return data

    def _raise_for_status(self, response: httpx.Response, method: str, url: str, group_id: str | None) -> None:
        try:
            message = response.json().get("error") or response.reason_phrase
        except ValueError:
            message = response.text or response.reason_phrase

        logger.warning(
            "Store rejected request",
            status=response.status_code,
            method=method,
            url=url,
            content=response.content,
        )
        if response.status_code in (400, 422):
            raise ValidationError("request", message)
        if response.status_code == 404:
            if group_id is None:
                raise NotFoundError(Entity.MENU_ITEM, self.item_id)
            raise NotFoundError(Entity.MODIFIER_GROUP, group_id)
        if response.status_code == 409:
            raise ConflictError(message)
        raise NetworkError(message, status_code=response.status_code)
