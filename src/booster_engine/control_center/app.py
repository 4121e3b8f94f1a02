import asyncio
import secrets
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from booster_engine.domain.contracts import ApplyOutcome, BatchResult, Command, CommandResult
from booster_engine.services.booster_service import BoosterService
from booster_engine.services.error_codes import (
    ERROR_CATALOG,
    describe_outcome,
    error_code_for,
)


class CommandRequest(BaseModel):
    argv: List[str]


class AuthorizationRequest(BaseModel):
    request_id: int = 1000
    timeout_sec: float = 60.0


class CustomCommandsRequest(BaseModel):
    lines: List[str]


def _result_to_dict(result: CommandResult) -> Dict[str, Any]:
    return {
        "succeeded": result.succeeded,
        "exit_code": result.exit_code,
        "stdout": result.stdout,
        "stderr": result.stderr,
        "failure_reason": result.failure_reason.value if result.failure_reason else None,
        "error_code": "" if result.succeeded else error_code_for(result.failure_reason),
    }


def _batch_to_dict(batch: BatchResult) -> Dict[str, Any]:
    return {
        "succeeded": batch.succeeded,
        "success_count": batch.success_count,
        "total_count": batch.total_count,
        "entries": [
            {"argv": entry.command.argv, "result": _result_to_dict(entry.result)}
            for entry in batch.entries
        ],
    }


def _outcome_to_dict(outcome: ApplyOutcome) -> Dict[str, Any]:
    return {
        "succeeded": outcome.succeeded,
        "profile_id": outcome.profile_id,
        "reason": outcome.reason.value if outcome.reason else None,
        "error_code": "" if outcome.succeeded else error_code_for(outcome.reason),
        "message": describe_outcome(outcome),
        "batch_result": _batch_to_dict(outcome.batch_result) if outcome.batch_result is not None else None,
    }


def _catalog_to_dict() -> List[Dict[str, Any]]:
    return [
        {
            "code": entry.code,
            "title": entry.title,
            "user_message": entry.user_message,
            "actions": [
                {"action_id": a.action_id, "label": a.label, "description": a.description}
                for a in entry.actions
            ],
        }
        for entry in ERROR_CATALOG
    ]


def create_app(service: BoosterService, api_key: Optional[str] = None) -> FastAPI:
    app = FastAPI(title="Booster Control Center", version="0.1.0")
    expected_key = (api_key or "").strip()

    def _require_key(request: Request) -> None:
        if not expected_key:
            return
        bearer = (request.headers.get("authorization") or "").strip()
        token = bearer[7:].strip() if bearer.lower().startswith("bearer ") else ""
        token = token or (request.headers.get("x-api-key") or "").strip()
        if not token or not secrets.compare_digest(token, expected_key):
            raise HTTPException(status_code=401, detail="Missing or invalid API key.")

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "broker": service.broker_availability().value}

    @app.get("/api/status")
    async def api_status(request: Request) -> Dict[str, Any]:
        _require_key(request)
        return service.status()

    @app.get("/api/error-catalog")
    async def api_error_catalog(request: Request) -> List[Dict[str, Any]]:
        _require_key(request)
        return _catalog_to_dict()

    @app.get("/api/profiles")
    async def api_profiles(request: Request) -> List[Dict[str, Any]]:
        _require_key(request)
        return [profile.metadata() for profile in service.list_profiles()]

    @app.post("/api/profiles/{profile_id}/apply")
    async def api_apply_profile(request: Request, profile_id: str) -> Dict[str, Any]:
        _require_key(request)
        return _outcome_to_dict(await service.apply(profile_id))

    @app.post("/api/commands")
    async def api_run_command(request: Request, req: CommandRequest) -> Dict[str, Any]:
        _require_key(request)
        if not req.argv or not str(req.argv[0]).strip():
            raise HTTPException(status_code=400, detail="argv must name a program.")
        result = await service.run_ad_hoc_command(Command.of(*req.argv))
        return _result_to_dict(result)

    @app.post("/api/authorization")
    async def api_request_authorization(request: Request, req: AuthorizationRequest) -> Dict[str, Any]:
        _require_key(request)
        try:
            state = await asyncio.wait_for(
                service.wait_for_authorization(req.request_id),
                timeout=max(0.1, req.timeout_sec),
            )
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except asyncio.TimeoutError:
            raise HTTPException(status_code=504, detail="Consent was not given in time.")
        return {"request_id": req.request_id, "state": state.value}

    @app.get("/api/system-info")
    async def api_system_info(request: Request) -> Dict[str, str]:
        _require_key(request)
        return await service.system_info()

    @app.get("/api/custom-commands")
    async def api_get_custom_commands(request: Request) -> Dict[str, Any]:
        _require_key(request)
        return {"lines": service.get_custom_commands()}

    @app.put("/api/custom-commands")
    async def api_set_custom_commands(request: Request, req: CustomCommandsRequest) -> Dict[str, Any]:
        _require_key(request)
        service.set_custom_commands(req.lines)
        profile = service.get_profile("custom")
        return {"lines": service.get_custom_commands(), "command_count": len(profile.commands) if profile else 0}

    return app
