"""The purchase handler workflow.

    Parallel ─┬─ CreateLicense (Keygen, POST /licenses)
              └─ GetCustomer   (Paddle, GET /customers/{id})
       │
    SendEmail (license key to the customer)

The trigger is a Paddle transaction event: ``{"data": {"id", "customer_id"}}``.
"""

from __future__ import annotations

from license_fulfillment.config import FulfillmentSettings
from license_fulfillment.engine.connectors import Connector
from license_fulfillment.engine.definition import (
    Parallel,
    RetryPolicy,
    Task,
    TaskResource,
    WorkflowDefinition,
)

KEYGEN_CONNECTOR = "keygen"
PADDLE_CONNECTOR = "paddle"

EMAIL_BODY_TEMPLATE = "Hi {customer.data.name}, \n\nYour license key is: {license.data.attributes.key}"

# License creation is not idempotent on the Keygen side; the transaction id in
# the license metadata is what ties duplicates back to one purchase.
CREATE_LICENSE_RETRY = RetryPolicy(error_equals=("ALL",), interval_seconds=1.0, max_attempts=3)
GET_CUSTOMER_RETRY = RetryPolicy(
    error_equals=("CallFailed",), interval_seconds=1.0, max_attempts=3, backoff_rate=2.0
)
SEND_EMAIL_RETRY = RetryPolicy(
    error_equals=("CallFailed",), interval_seconds=1.0, max_attempts=3, backoff_rate=2.0
)


def build_connectors(settings: FulfillmentSettings) -> list[Connector]:
    return [
        Connector(
            name=KEYGEN_CONNECTOR,
            base_url=settings.keygen_base_url,
            credential_ref=settings.keygen_secret_ref,
            headers={
                "Content-Type": "application/vnd.api+json",
                "Accept": "application/vnd.api+json",
            },
        ),
        Connector(
            name=PADDLE_CONNECTOR,
            base_url=settings.paddle_base_url,
            credential_ref=settings.paddle_secret_ref,
            headers={"Accept": "application/json"},
        ),
    ]


def build_purchase_workflow(settings: FulfillmentSettings) -> WorkflowDefinition:
    create_license = Task.build(
        "CreateLicense",
        resource=TaskResource.HTTP_INVOKE,
        connector=KEYGEN_CONNECTOR,
        parameters={
            "Method": "POST",
            "Path": "licenses",
            "RequestBody": {
                "data": {
                    "type": "licenses",
                    "attributes": {
                        "metadata": {
                            "transactionId.$": "$.data.id",
                            "customerId.$": "$.data.customer_id",
                        },
                    },
                    "relationships": {
                        "policy": {
                            "data": {"type": "policies", "id": settings.keygen_policy_id},
                        },
                    },
                },
            },
        },
        result_selector={"body.$": "$.ResponseBody"},
        output_path="$.body",
        retry=CREATE_LICENSE_RETRY,
        end=True,
    )

    get_customer = Task.build(
        "GetCustomer",
        resource=TaskResource.HTTP_INVOKE,
        connector=PADDLE_CONNECTOR,
        parameters={
            "Method": "GET",
            "ApiEndpoint.$": "States.Format('customers/{}', $.data.customer_id)",
        },
        output_path="$.ResponseBody",
        retry=GET_CUSTOMER_RETRY,
        end=True,
    )

    lookup = Parallel.build(
        "Parallel",
        branches=[create_license, get_customer],
        result_selector={"license.$": "$[0]", "customer.$": "$[1]"},
    )

    send_email = Task.build(
        "SendEmail",
        resource=TaskResource.EMAIL_SEND,
        parameters={
            "Destination": {"ToAddresses.$": "States.Array($.customer.data.email)"},
            "From": settings.from_email,
            "Subject": settings.email_subject,
            "Charset": "UTF-8",
            "Body.$": EMAIL_BODY_TEMPLATE,
        },
        retry=SEND_EMAIL_RETRY,
        end=True,
    )

    return WorkflowDefinition(
        name="PurchaseHandler",
        nodes=(lookup, send_email),
        comment="Create a license and email its key to the purchasing customer",
    )
