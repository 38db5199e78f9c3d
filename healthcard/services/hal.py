# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Adds affordance links that depend on the caller's role and the record's state.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from ..domain.authorization import Principal
from ..models.enums import ApplicationStatus, PaymentStatus, ReviewStatus, UserRole
from ..models.responses import HalLink

PROBLEM_BASE = "https://api.healthcard.local/problems/"


def to_json_ready(value: Any) -> Any:
    """Recursively convert datetimes to ISO strings."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_json_ready(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_ready(item) for item in value]
    return value


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))
        return HalLink(href=href, method=method, type=content_type, title=title)

    def build_self_link(self, resource_path: str) -> HalLink:
        return self.build_link(resource_path, title="Self")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        return self.build_link(
            f"{resource_path}/{action}",
            method=method,
            content_type="application/json",
            title=title or action.replace('-', ' ').title()
        )


class AffordanceLinkBuilder:
    """Builder for conditional affordance links based on role and state."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_application_affordances(
        self,
        application: Dict[str, Any],
        principal: Principal
    ) -> Dict[str, HalLink]:
        """Links for an application."""
        base_path = f"/api/applications/{application['id']}"
        links = {
            'self': self.link_builder.build_self_link(base_path),
            'rejections': self.link_builder.build_link(
                f"{base_path}/rejections", title="Rejection history"
            ),
        }
        status = application.get('status')
        is_owner = application.get('userId') == principal.user_id

        if principal.role == UserRole.APPLICANT and is_owner:
            if status == ApplicationStatus.DRAFT:
                links['complete'] = self.link_builder.build_action_link(base_path, "complete")
            if status in (ApplicationStatus.DRAFT, ApplicationStatus.PENDING_PAYMENT):
                links['edit'] = self.link_builder.build_link(
                    base_path, method="PATCH", content_type="application/json", title="Edit form"
                )
            if status == ApplicationStatus.PENDING_PAYMENT:
                links['submit'] = self.link_builder.build_action_link(base_path, "submit")
            if status == ApplicationStatus.FOR_ORIENTATION:
                links['schedule-orientation'] = self.link_builder.build_action_link(
                    base_path, "orientation", title="Schedule orientation"
                )

        if principal.role in (UserRole.ADMIN, UserRole.SYSTEM_ADMIN):
            if status not in (
                ApplicationStatus.DRAFT, ApplicationStatus.PENDING_PAYMENT,
                ApplicationStatus.APPROVED, ApplicationStatus.REJECTED, ApplicationStatus.ARCHIVED
            ):
                links['approve'] = self.link_builder.build_action_link(base_path, "approve")
                links['reject'] = self.link_builder.build_action_link(base_path, "reject")

        return links

    def build_upload_affordances(
        self,
        upload: Dict[str, Any],
        principal: Principal,
        is_owner: bool
    ) -> Dict[str, HalLink]:
        """Links for a document upload."""
        base_path = f"/api/documents/{upload['id']}"
        links = {}
        status = upload.get('reviewStatus')

        if principal.is_reviewer and status == ReviewStatus.PENDING:
            links['review'] = self.link_builder.build_action_link(base_path, "review")
        if principal.role == UserRole.APPLICANT and is_owner:
            if status == ReviewStatus.REJECTED:
                links['resubmit'] = self.link_builder.build_action_link(base_path, "resubmit")
            if status == ReviewStatus.PENDING:
                links['delete'] = self.link_builder.build_link(
                    base_path, method="DELETE", title="Delete upload"
                )
        return links

    def build_payment_affordances(
        self,
        payment: Dict[str, Any],
        principal: Principal
    ) -> Dict[str, HalLink]:
        """Links for a payment."""
        links = {}
        if (
            principal.role in (UserRole.ADMIN, UserRole.SYSTEM_ADMIN)
            and payment.get('paymentStatus') == PaymentStatus.PENDING
        ):
            links['review'] = self.link_builder.build_action_link(
                f"/api/payments/{payment['id']}", "review"
            )
        return links


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)
        self.affordances = AffordanceLinkBuilder(base_url)

    @staticmethod
    def _with_links(data: Dict[str, Any], links: Dict[str, HalLink]) -> Dict[str, Any]:
        response = to_json_ready(dict(data))
        response['_links'] = {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}
        return response

    def format_application_view(self, view: Dict[str, Any], principal: Principal) -> Dict[str, Any]:
        """Format an application with its checklist and payment."""
        application = view['application']
        is_owner = application.get('userId') == principal.user_id
        checklist = []
        for entry in view.get('checklist', []):
            row = to_json_ready(dict(entry))
            if entry.get('upload'):
                row['upload'] = self._with_links(
                    entry['upload'],
                    self.affordances.build_upload_affordances(entry['upload'], principal, is_owner)
                )
            checklist.append(row)

        payment = view.get('payment')
        response = self._with_links(
            {'application': to_json_ready(application)},
            self.affordances.build_application_affordances(application, principal)
        )
        response['checklist'] = checklist
        response['payment'] = (
            self._with_links(payment, self.affordances.build_payment_affordances(payment, principal))
            if payment else None
        )
        response['orientation'] = to_json_ready(view.get('orientation'))
        return response

    def format_application(self, application: Dict[str, Any], principal: Principal) -> Dict[str, Any]:
        return self._with_links(
            application, self.affordances.build_application_affordances(application, principal)
        )

    def format_resource(self, data: Dict[str, Any], path: str) -> Dict[str, Any]:
        """Format any resource with only a self link."""
        return self._with_links(data, {'self': self.link_builder.build_self_link(path)})

    def format_collection(
        self,
        items: List[Dict[str, Any]],
        collection_path: str,
        extra: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Format a list of items as an embedded collection."""
        response = {
            'total': len(items),
            '_links': {'self': self.link_builder.build_self_link(collection_path).model_dump(exclude_none=True)},
            '_embedded': {'items': to_json_ready(items)},
        }
        if extra:
            response.update(to_json_ready(extra))
        return response

    def format_error(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build an RFC 7807 problem body."""
        body = {
            'type': f"{PROBLEM_BASE}{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance,
        }
        if validation_errors:
            body['validation_errors'] = validation_errors
        if details:
            body['details'] = to_json_ready(details)
        return body
