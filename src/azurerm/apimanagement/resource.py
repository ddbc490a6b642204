"""API Management API policy resource.

Maps the ``azurerm_api_management_api_policy`` configuration block onto the
ARM API policy endpoints and keeps the recorded state in sync with Azure.
"""

from __future__ import annotations

import asyncio
import html
import logging

from azurerm.apimanagement.client import ManagementError, response_was_not_found
from azurerm.apimanagement.diff import xml_with_dotnet_interpolations_diff_suppress
from azurerm.apimanagement.errors import (
    ApiPolicyError,
    ImportAsExistsError,
    ValidationError,
)
from azurerm.apimanagement.models import (
    InlineContent,
    LinkReference,
    PolicyBody,
    PolicyContract,
    PolicyExportFormat,
)
from azurerm.apimanagement.parse import (
    ApiPolicyId,
    parse_api_policy_id,
    validate_api_policy_id,
)
from azurerm.apimanagement.sdk import (
    ProviderClients,
    Resource,
    ResourceData,
    ResourceTimeout,
    Schema,
    default_timeout,
    importer_validating_resource_id,
)
from azurerm.apimanagement import validate

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "azurerm_api_management_api_policy"


def resource_api_management_api_policy() -> Resource:
    return Resource(
        type_name=RESOURCE_TYPE,
        create=create_update,
        read=read,
        update=create_update,
        delete=delete,
        importer=importer_validating_resource_id(validate_api_policy_id),
        timeouts=ResourceTimeout(
            create=default_timeout(30),
            read=default_timeout(5),
            update=default_timeout(30),
            delete=default_timeout(30),
        ),
        schema={
            "resource_group_name": Schema(
                required=True,
                force_new=True,
                validate_func=validate.resource_group_name,
            ),
            "api_management_name": Schema(
                required=True,
                force_new=True,
                validate_func=validate.api_management_service_name,
            ),
            "api_name": Schema(
                required=True,
                force_new=True,
                validate_func=validate.api_management_api_name,
            ),
            "xml_content": Schema(
                optional=True,
                computed=True,
                conflicts_with=["xml_link"],
                diff_suppress_func=xml_with_dotnet_interpolations_diff_suppress,
            ),
            "xml_link": Schema(
                optional=True,
                conflicts_with=["xml_content"],
            ),
        },
    )


def _key(resource_group: str, service_name: str, api_name: str) -> str:
    return (
        f'Resource Group "{resource_group}" / API Management Service "{service_name}" '
        f'/ API "{api_name}"'
    )


def select_policy_body(d: ResourceData) -> PolicyBody:
    """Pick the policy source to send; a link wins over inline content.

    Raises:
        ValidationError: when neither field is set.
    """
    xml_content = d.get("xml_content")
    xml_link = d.get("xml_link")

    if xml_link:
        return LinkReference(uri=xml_link)

    # `xml_content` is computed, so it only counts when no link is configured
    if xml_content:
        # content now supersedes any previously stored link
        if not d.is_new_resource():
            d.set("xml_link", "")
        return InlineContent(value=xml_content)

    raise ValidationError("Either `xml_content` or `xml_link` must be set")


async def create_update(d: ResourceData, meta: ProviderClients) -> None:
    client = meta.api_policies
    operation = "create" if d.is_new_resource() else "update"

    resource_group = d.get("resource_group_name")
    service_name = d.get("api_management_name")
    api_name = d.get("api_name")

    # no network call for an invalid body
    body = select_policy_body(d)
    parameters = PolicyContract.from_body(body)

    async with asyncio.timeout(d.timeout(operation)):
        if d.is_new_resource():
            try:
                existing = await client.get(
                    resource_group, service_name, api_name, PolicyExportFormat.XML
                )
            except ManagementError as e:
                if not response_was_not_found(e):
                    raise ApiPolicyError(
                        "checking for presence of existing API Policy "
                        f'(API Management Service "{service_name}" / API "{api_name}" '
                        f'/ Resource Group "{resource_group}"): {e}'
                    ) from e
            else:
                if existing.id:
                    raise ImportAsExistsError(RESOURCE_TYPE, existing.id)

        try:
            await client.create_or_update(
                resource_group, service_name, api_name, parameters, if_match=""
            )
        except ManagementError as e:
            raise ApiPolicyError(
                f"creating or updating API Policy ({_key(resource_group, service_name, api_name)}): {e}"
            ) from e

        try:
            resp = await client.get(
                resource_group, service_name, api_name, PolicyExportFormat.XML
            )
        except ManagementError as e:
            raise ApiPolicyError(
                f"retrieving API Policy ({_key(resource_group, service_name, api_name)}): {e}"
            ) from e
        if not resp.id:
            raise ApiPolicyError(
                f"Cannot read ID for API Policy ({_key(resource_group, service_name, api_name)})"
            )

        d.set_id(resp.id)

    await read(d, meta)


async def read(d: ResourceData, meta: ProviderClients) -> None:
    client = meta.api_policies

    policy_id: ApiPolicyId = parse_api_policy_id(d.id)

    async with asyncio.timeout(d.timeout("read")):
        try:
            resp = await client.get(
                policy_id.resource_group,
                policy_id.service_name,
                policy_id.api_name,
                PolicyExportFormat.XML,
            )
        except ManagementError as e:
            if response_was_not_found(e):
                logger.debug("%s was not found - removing from state!", policy_id)
                d.set_id("")
                return
            raise ApiPolicyError(f"making Read request for {policy_id}: {e}") from e

    d.set("resource_group_name", policy_id.resource_group)
    d.set("api_management_name", policy_id.service_name)
    d.set("api_name", policy_id.api_name)

    if resp.properties is not None:
        policy_content = ""
        if resp.properties.value is not None:
            policy_content = html.unescape(resp.properties.value)

        # a submitted `xml_link` is downloaded and stored as content, so the
        # link itself can never be read back
        d.set("xml_content", policy_content)


async def delete(d: ResourceData, meta: ProviderClients) -> None:
    client = meta.api_policies

    policy_id = parse_api_policy_id(d.id)

    async with asyncio.timeout(d.timeout("delete")):
        try:
            await client.delete(
                policy_id.resource_group,
                policy_id.service_name,
                policy_id.api_name,
                if_match="",
            )
        except ManagementError as e:
            if not response_was_not_found(e):
                raise ApiPolicyError(f"deleting {policy_id}: {e}") from e
