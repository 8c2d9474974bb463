import json
import logging
import traceback
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from gateway_logging import configure_logging
from gateway_settings import Settings, load_settings
from xml_gateway import GatewayError, decode, encode, send, validate_header

configure_logging(load_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="JSON→XML mTLS Gateway")

ENVELOPE_SCHEMA = {
    "requestBody": {
        "required": True,
        "content": {
            "application/json": {
                "schema": {
                    "type": "object",
                    "description": "First key holds the header (SessionID, ServiceName, RequestTime), "
                    "second key names the XML root element and holds its body.",
                }
            }
        },
    }
}


def reject_constant(name: str):
    raise ValueError(f"Invalid JSON constant {name}")


def error_response(status_code: int, error: str, message: Optional[str], debug: bool) -> JSONResponse:
    content = {"error": error}
    if message is not None:
        content["message"] = message
    if debug:
        content["traceback"] = traceback.format_exc()
    return JSONResponse(status_code=status_code, content=content)


@app.get("/")
@app.get("/statusCheck")
async def status_check(settings: Settings = Depends(load_settings)):
    return JSONResponse(status_code=settings.healthcheck_status, content={"status": "ok"})


@app.post("/RestApi-call", operation_id="rest_api_call", openapi_extra=ENVELOPE_SCHEMA)
async def rest_api_call(request: Request, settings: Settings = Depends(load_settings)):
    logger.info("Incoming request received")
    try:
        body = json.loads(await request.body(), parse_constant=reject_constant)
    except (ValueError, RecursionError):
        body = None
    is_valid = isinstance(body, dict) and len(body) > 0
    logger.debug("Request body valid", extra={"is_valid": is_valid})
    if not is_valid:
        logger.warning("Invalid or empty JSON body")
        return JSONResponse(status_code=400, content={"error": "Invalid or empty JSON body"})

    try:
        encoded = encode(body)
        validate_header(encoded.header)
        xml_response = await run_in_threadpool(send, encoded.xml, settings.api_url, settings.tls)
        payload = decode(xml_response)
        response = JSONResponse(status_code=200, content={"Header": encoded.header, **payload})
    except GatewayError as e:
        logger.error(e.error, extra={"error": e.message}, exc_info=True)
        message = None if e.message == e.error else e.message
        return error_response(e.status_code, e.error, message, settings.debug)
    except Exception as e:
        logger.exception("Exception caught", extra={"error": str(e)})
        return error_response(500, "Internal Server Error", str(e), settings.debug)

    logger.info("Successfully processed API request", extra={"root_tag": encoded.root_tag})
    return response


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=load_settings().port)
