"""Resolve the Xero contact an invoice is billed to."""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from xero_sync.core.context import SyncContext
from xero_sync.core.errors import DependencyResolutionError, SyncError
from xero_sync.integrations.copilot.schemas import ClientResponse, CompanyResponse
from xero_sync.integrations.xero.schemas import Contact
from xero_sync.models.enums import ContactUserType, SyncEntityType, SyncEventType, SyncStatus
from xero_sync.models.synced import SyncedContact
from xero_sync.modules.invoice_sync.serializers import (
    serialize_contact_for_client,
    serialize_contact_for_company,
)
from xero_sync.modules.sync_logs.service import SyncLogsService
from xero_sync.schemas.sync_logs import SyncLogPayload

logger = structlog.get_logger()


class SyncedContactsService:
    async def get_synced_contact(
        self, ctx: SyncContext, client_id: str | None, company_id: str | None
    ) -> Contact:
        """Return the mapped Xero contact, reconciling or recreating it as needed.

        A missing ``client_id`` means the invoice is billed to the company.
        """
        bill_company = ctx.workspace_settings.use_company_name or not client_id
        if bill_company and not company_id:
            raise DependencyResolutionError(
                "Company-billed invoice has no company id",
                400,
                failed_sync_log=SyncLogPayload(
                    entity_type=SyncEntityType.CUSTOMER,
                    event_type=SyncEventType.CREATED,
                    copilot_id=client_id,
                ),
            )

        client = await ctx.copilot.get_client(client_id) if client_id else None
        company = await ctx.copilot.get_company(company_id) if bill_company else None

        identity = company_id if bill_company else client_id
        user_type = ContactUserType.COMPANY if bill_company else ContactUserType.CLIENT

        stmt = select(SyncedContact).where(
            SyncedContact.portal_id == ctx.portal_id,
            SyncedContact.tenant_id == ctx.tenant_id,
            SyncedContact.client_or_company_id == identity,
            SyncedContact.user_type == user_type,
        )
        mapping = (await ctx.session.execute(stmt)).scalar_one_or_none()

        if mapping is not None:
            xero_contact = await ctx.xero.get_contact(mapping.contact_id)
            if xero_contact is not None:
                return await self.validate_xero_contact(ctx, xero_contact, client, company)

            logger.info(
                "synced_contact_stale",
                portal_id=ctx.portal_id,
                client_or_company_id=identity,
                contact_id=mapping.contact_id,
            )
            await ctx.session.execute(
                delete(SyncedContact).where(
                    SyncedContact.portal_id == ctx.portal_id,
                    SyncedContact.tenant_id == ctx.tenant_id,
                    SyncedContact.client_or_company_id == identity,
                )
            )

        return await self.create_contact(ctx, client, company)

    async def create_contact(
        self,
        ctx: SyncContext,
        client: ClientResponse | None = None,
        company: CompanyResponse | None = None,
    ) -> Contact:
        """Create a Xero contact for the company if given, else for the client."""
        if company is not None:
            copilot_id = company.id
            user_type = ContactUserType.COMPANY
            payload = serialize_contact_for_company(
                company, company.email or (client.email if client else None)
            )
        elif client is not None:
            copilot_id = client.id
            user_type = ContactUserType.CLIENT
            payload = serialize_contact_for_client(client)
        else:
            raise DependencyResolutionError("Client or company is required to create a contact", 400)

        audit = SyncLogPayload(
            entity_type=SyncEntityType.CUSTOMER,
            event_type=SyncEventType.CREATED,
            copilot_id=copilot_id,
            customer_name=payload.name,
            customer_email=payload.email_address,
        )
        try:
            contact = await ctx.xero.create_contact(payload)
            try:
                async with ctx.session.begin_nested():
                    ctx.session.add(
                        SyncedContact(
                            portal_id=ctx.portal_id,
                            tenant_id=ctx.tenant_id,
                            client_or_company_id=copilot_id,
                            user_type=user_type,
                            contact_id=contact.contact_id,
                        )
                    )
            except IntegrityError:
                logger.info("synced_contact_exists", portal_id=ctx.portal_id, client_or_company_id=copilot_id)
        except SyncError as exc:
            raise SyncError("Failed to create synced contact", failed_sync_log=audit, cause=exc) from exc

        audit.xero_id = contact.contact_id
        audit.customer_name = contact.name or audit.customer_name
        audit.customer_email = contact.email_address or audit.customer_email
        await SyncLogsService(ctx.session).create_sync_log(
            ctx.portal_id, ctx.tenant_id, audit, SyncStatus.SUCCESS
        )
        logger.info(
            "synced_contact_created",
            portal_id=ctx.portal_id,
            client_or_company_id=copilot_id,
            contact_id=contact.contact_id,
        )
        return contact

    async def validate_xero_contact(
        self,
        ctx: SyncContext,
        contact: Contact,
        client: ClientResponse | None,
        company: CompanyResponse | None,
    ) -> Contact:
        """Push Copilot name/email changes to Xero, only when they differ."""
        if ctx.workspace_settings.use_company_name and company is None:
            raise DependencyResolutionError("Company details missing while billing to company name")

        if company is not None and (ctx.workspace_settings.use_company_name or client is None):
            copilot_id = company.id
            desired = {"name": company.name}
        elif client is not None:
            copilot_id = client.id
            desired = {
                "name": client.full_name,
                "first_name": client.given_name,
                "last_name": client.family_name,
                "email_address": client.email,
            }
        else:
            return contact

        if all(getattr(contact, field) == value for field, value in desired.items()):
            logger.debug("synced_contact_unchanged", contact_id=contact.contact_id)
            return contact

        audit = SyncLogPayload(
            entity_type=SyncEntityType.CUSTOMER,
            event_type=SyncEventType.UPDATED,
            copilot_id=copilot_id,
            xero_id=contact.contact_id,
            customer_name=desired["name"],
            customer_email=desired.get("email_address", contact.email_address),
        )
        try:
            updated = await ctx.xero.update_contact(contact.model_copy(update=desired))
        except SyncError as exc:
            raise SyncError("Failed to update synced contact", failed_sync_log=audit, cause=exc) from exc

        audit.customer_name = updated.name or audit.customer_name
        audit.customer_email = updated.email_address or audit.customer_email
        await SyncLogsService(ctx.session).create_sync_log(
            ctx.portal_id, ctx.tenant_id, audit, SyncStatus.SUCCESS
        )
        return updated
