"""Routes: agent deploy, stop, status, activity, config, chat and direct actions."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from shard_agent import config
from shard_agent.chat import apply_directive, compose_reply, parse_directive
from shard_agent.manager import AgentManager
from shard_agent.models import (
    AgentActionRequest, ChatRequest, ConfigPatchRequest, DeployRequest, Entity, EntityRef, StopRequest,
)
from shard_agent.runner import FirstTickError
from shard_agent.store import AgentConfigStore
from shard_agent.utils import short_wallet

_log = logging.getLogger(__name__)
router = APIRouter(prefix="/agent")


def require_admin(request: Request) -> bool:
    if not config.ADMIN_TOKEN:
        return True
    auth = (request.headers.get("authorization") or "").strip()
    return auth == f"Bearer {config.ADMIN_TOKEN}"


def _unauthorized() -> JSONResponse:
    return JSONResponse({"error": "unauthorized"}, status_code=401)


def _store(request: Request) -> AgentConfigStore:
    return request.app.state.store


def _manager(request: Request) -> AgentManager:
    return request.app.state.manager


@router.post("/deploy")
def deploy(req: DeployRequest, request: Request):
    if not require_admin(request):
        return _unauthorized()
    store, manager = _store(request), _manager(request)
    wallet = req.wallet_address.lower()

    if req.custodial_wallet:
        store.set_custodial_wallet(wallet, req.custodial_wallet)
    if req.entity_id:
        store.set_entity_ref(wallet, EntityRef(entity_id=req.entity_id, zone_id=req.zone_id or config.DEFAULT_ZONE))

    patch = {"enabled": True}
    if req.focus is not None:
        patch["focus"] = req.focus
    if req.strategy is not None:
        patch["strategy"] = req.strategy
    cfg = store.patch_config(wallet, **patch)

    try:
        manager.start(wallet, wait_for_first_tick=True)
    except FirstTickError as e:
        _log.warning("[agent:%s] Deploy failed: %s", short_wallet(wallet), e)
        store.patch_config(wallet, enabled=False)
        return JSONResponse({"ok": False, "error": str(e)}, status_code=500)

    store.append_activity(wallet, "system", f"Agent deployed (focus {cfg.focus.value}, {cfg.strategy.value})")
    return {"ok": True, "wallet": wallet, "focus": cfg.focus.value, "strategy": cfg.strategy.value}


@router.post("/stop")
def stop(req: StopRequest, request: Request):
    if not require_admin(request):
        return _unauthorized()
    wallet = req.wallet_address.lower()
    was_running = _manager(request).stop(wallet)
    _store(request).append_activity(wallet, "system", "Agent stopped")
    return {"ok": True, "was_running": was_running}


@router.get("/status/{wallet}")
def status(wallet: str, request: Request):
    store, manager = _store(request), _manager(request)
    cfg = store.get_config(wallet)
    ref = store.get_entity_ref(wallet)
    runner = manager.get_runner(wallet)
    entity = runner.read_entity() if runner is not None else None
    return {
        "wallet": wallet.lower(),
        "running": manager.is_running(wallet),
        "phase": runner.phase.value if runner else None,
        "config": cfg.model_dump(mode="json") if cfg else None,
        "entity_id": ref.entity_id if ref else None,
        "zone_id": ref.zone_id if ref else None,
        "custodial_wallet": store.get_custodial_wallet(wallet),
        "entity": _entity_summary(entity) if entity else None,
    }


def _entity_summary(entity: Entity) -> dict:
    return {
        "name": entity.name,
        "type": entity.type,
        "level": entity.level,
        "hp": entity.hp,
        "max_hp": entity.max_hp,
        "x": entity.x,
        "y": entity.y,
        "equipment": {slot: (item.token_id if item else None) for slot, item in entity.equipment.items()},
    }


@router.get("/activity/{wallet}")
def activity(wallet: str, request: Request, limit: int = 50):
    entries = _store(request).read_activity(wallet, limit=max(1, min(limit, 500)))
    return {"wallet": wallet.lower(), "entries": [e.model_dump() for e in entries]}


@router.post("/config")
def update_config(req: ConfigPatchRequest, request: Request):
    if not require_admin(request):
        return _unauthorized()
    store = _store(request)
    wallet = req.wallet_address.lower()
    if store.get_config(wallet) is None:
        return JSONResponse({"error": "agent_not_found"}, status_code=404)

    patch = {k: v for k, v in {"focus": req.focus, "strategy": req.strategy}.items() if v is not None}
    if "target_zone" in req.model_fields_set:
        patch["target_zone"] = req.target_zone
    cfg = store.patch_config(wallet, **patch)
    if req.message:
        store.append_activity(wallet, "user", req.message)
    changed = ", ".join(f"{k}={getattr(v, 'value', v)}" for k, v in patch.items()) or "nothing"
    store.append_activity(wallet, "system", f"Config updated: {changed}")
    return {"ok": True, "config": cfg.model_dump(mode="json")}


@router.post("/action")
def action(req: AgentActionRequest, request: Request):
    if not require_admin(request):
        return _unauthorized()
    runner = _manager(request).get_runner(req.wallet_address)
    if runner is None or not runner.running:
        return JSONResponse({"error": "agent_not_running"}, status_code=409)

    if req.action in ("buy", "equip") and req.token_id is None:
        return JSONResponse({"error": "token_id required"}, status_code=400)
    if req.action == "learn_profession" and not req.profession_id:
        return JSONResponse({"error": "profession_id required"}, status_code=400)

    if req.action == "buy":
        ok = runner.buy_item(req.token_id)
    elif req.action == "equip":
        ok = runner.equip_item(req.token_id)
    elif req.action == "repair":
        ok = runner.repair_gear()
    else:
        ok = runner.learn_profession(req.profession_id)
    return {"ok": ok, "action": req.action}


@router.post("/chat")
def chat(req: ChatRequest, request: Request):
    if not require_admin(request):
        return _unauthorized()
    store, manager = _store(request), _manager(request)
    wallet = req.wallet_address.lower()
    message = req.message.strip()
    if not message:
        return JSONResponse({"error": "message is required"}, status_code=400)
    if store.get_config(wallet) is None:
        return JSONResponse({"error": "agent_not_found"}, status_code=404)

    directive = parse_directive(message)
    patch, learned = apply_directive(store, wallet, directive, manager.get_runner(wallet))
    reply = compose_reply(directive, patch, learned)
    store.append_activity(wallet, "user", message)
    store.append_activity(wallet, "agent", reply)
    return {"response": reply, "config_updated": bool(patch), "agent_running": manager.is_running(wallet)}
