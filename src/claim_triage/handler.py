import asyncio, json, uuid, logging
from pydantic import ValidationError

from claim_triage.aggregate import process_claim
from claim_triage.config import settings
from claim_triage.models import ClaimRequest

logging.basicConfig(level=settings.log_level)

log = logging.getLogger()
log.setLevel(settings.log_level)


def _parse_body(event) -> dict:
    body = (event or {}).get("body")
    if body is None:
        return {}
    if isinstance(body, (str, bytes)):
        return json.loads(body or "{}")
    return body


def lambda_handler(event, context):
    corr_id = str(uuid.uuid4())
    try:
        req = ClaimRequest.model_validate(_parse_body(event))
    except (ValidationError, ValueError) as ve:
        log.warning("%s input error: %s", corr_id, ve)
        return {
            "statusCode": 422,
            "body": json.dumps({"detail": str(ve),
                                "correlation_id": corr_id})
        }

    try:
        result = asyncio.run(process_claim(req, corr_id))
        return {
            "statusCode": 200,
            "headers": {"Content-Type": "application/json",
                        "X-Correlation-Id": corr_id},
            "body": result.model_dump_json()
        }
    except Exception:
        log.exception("%s unhandled", corr_id)
        return {"statusCode": 500,
                "body": json.dumps({"detail": "internal error",
                                    "correlation_id": corr_id})}
