"""Request and upstream payload builders shared by the tests."""

def tenant_payload(account_id: str = "86810", company_id: str = "111214", **overrides) -> dict:
    """Registration body as the tenant setup form sends it."""
    body = {
        "accountId": account_id,
        "companyId": company_id,
        "accountName": "Acme Account",
        "companyName": "Acme Field Service",
        "cluster": "eu",
        "contactCompanyName": "Acme Ltd",
        "contactFullName": "Sam Dispatcher",
        "contactPhone": "+49 30 1234567",
        "contactEmailAddress": "sam@acme-service.com",
        "clientId": "0001531a-acme",
        "clientSecret": "super-secret-value",
    }
    body.update(overrides)
    return body


def activity_payload(activity_id: str, **overrides) -> dict:
    """Activity as the FSM Data API returns it."""
    body = {
        "id": activity_id,
        "code": f"ACT-{activity_id}",
        "subject": f"Boiler service {activity_id}",
        "status": "OPEN",
        "businessPartner": "BP-100",
        "object": {"objectId": f"SC-{activity_id}", "objectType": "SERVICECALL"},
    }
    body.update(overrides)
    return body
