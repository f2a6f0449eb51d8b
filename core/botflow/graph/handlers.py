"""
Node handlers - what each node type does when the engine reaches it.

A handler is a coroutine ``(node, invocation) -> port``:
- single-output nodes return None and the engine follows every outgoing edge
- branch, loop and permission nodes return the port to leave through

Loop handlers run their own body through ``invocation.run_loop_body`` and
then return ``complete``. Recoverable failures (HTTP, database, JSON) are
recorded on the invocation and bound to the node's ``_error`` variable;
anything else raised here aborts the invocation.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from botflow.errors import (
    DatabaseOperationFailed,
    ExternalCallFailed,
    HttpCallFailed,
    JsonOperationFailed,
    LoopLimitExceeded,
    NodeExecutionError,
    PluginRuntimeError,
)
from botflow.graph import operations as ops
from botflow.graph.context import PluginResponse
from botflow.graph.expression import ExpressionError, as_number
from botflow.graph.node import NodeSpec, NodeType, PortId
from botflow.graph.template import stringify, strip_braces
from botflow.observability.logging import PLUGIN_LOGGER
from botflow.runtime.state_store import StoreScope

if TYPE_CHECKING:
    from botflow.graph.executor import Invocation

logger = logging.getLogger(__name__)

plugin_logger = logging.getLogger(PLUGIN_LOGGER)

NodeHandler = Callable[[NodeSpec, "Invocation"], Awaitable[PortId | None]]

T = TypeVar("T")


def _branch(result: bool) -> PortId:
    return PortId.TRUE if result else PortId.FALSE


async def _call_platform(node: NodeSpec, action: str, call: Awaitable[T]) -> T:
    try:
        return await call
    except PluginRuntimeError:
        raise
    except Exception as e:
        raise ExternalCallFailed(f"{action} failed: {e}", node_id=node.id, action=action) from e


# ---------------------------------------------------------------------------
# Basic nodes
# ---------------------------------------------------------------------------


async def handle_trigger(node: NodeSpec, inv: "Invocation") -> PortId | None:
    return None


async def handle_response(node: NodeSpec, inv: "Invocation") -> PortId | None:
    content = inv.render(node.get("message", "Hello!"), node)
    inv.respond(
        PluginResponse(
            node_id=node.id,
            content=content,
            ephemeral=bool(node.get("ephemeral", False)),
        )
    )
    return None


_TRUTHY = {"true", "1", "yes", "on"}


async def handle_variable(node: NodeSpec, inv: "Invocation") -> PortId | None:
    name = node.get("name")
    if not name:
        raise NodeExecutionError("Variable node has no name", node_id=node.id)

    kind = node.get("type", "string")
    event = inv.event
    value: Any

    if kind == "user_input":
        value = event.options.get(name)
        if value is None or value == "":
            value = event.content or ""
    elif kind == "user_name":
        value = event.username or "Unknown"
    elif kind == "user_id":
        value = event.user_id
    elif kind == "channel_id":
        value = event.channel_id
    elif kind == "guild_id":
        value = event.guild_id
    elif kind == "timestamp":
        value = ops.utc_timestamp()
    elif kind == "random_number":
        low = int(ops.require_number(inv.resolve(node.get("min", 1), node), "min"))
        high = int(ops.require_number(inv.resolve(node.get("max", 100), node), "max"))
        if low > high:
            low, high = high, low
        value = inv.rng.randint(low, high)
    elif kind == "number":
        value = ops.require_number(inv.resolve(node.get("value", 0), node), f"'{name}'")
    elif kind == "boolean":
        raw = inv.resolve(node.get("value", False), node)
        value = raw if isinstance(raw, bool) else stringify(raw).strip().lower() in _TRUTHY
    elif kind == "array":
        value = ops.coerce_array(inv.resolve(node.get("value"), node))
    elif kind == "object":
        value = ops.coerce_object(inv.resolve(node.get("value"), node))
    else:
        value = inv.render(node.get("value", ""), node)

    inv.bind(name, value)
    return None


_DATA_SOURCES: dict[str, Callable[["Invocation"], Any]] = {
    "server_name": lambda inv: inv.event.guild_name or "Unknown",
    "channel_name": lambda inv: inv.event.channel_name or "Unknown",
    "timestamp": lambda inv: ops.utc_timestamp(),
    "user_avatar": lambda inv: inv.event.avatar_url or "",
}


async def handle_data(node: NodeSpec, inv: "Invocation") -> PortId | None:
    name = node.get("name")
    if not name:
        raise NodeExecutionError("Data node has no name", node_id=node.id)
    source = _DATA_SOURCES.get(node.get("dataType", "text"))
    inv.bind(name, source(inv) if source else "")
    return None


async def handle_action(node: NodeSpec, inv: "Invocation") -> PortId | None:
    action = node.get("actionType", "log")

    if action == "log":
        plugin_logger.info(inv.render(node.get("message", "Log message"), node))
    elif action == "wait":
        duration = ops.require_number(inv.resolve(node.get("duration", 1000), node), "duration")
        delay_ms = max(0, min(duration, inv.config.max_wait_ms))
        await asyncio.sleep(delay_ms / 1000)
    elif action == "set_state":
        key = inv.render(node.get("key", "key"), node)
        value = inv.resolve(node.get("value", ""), node)
        try:
            await asyncio.shield(inv.store.set(inv.namespace(StoreScope.GUILD), key, value))
        except Exception as e:
            inv.recover(
                DatabaseOperationFailed(f"Saving state '{key}' failed: {e}", node_id=node.id)
            )
    else:
        raise NodeExecutionError(f"Unknown action type '{action}'", node_id=node.id)
    return None


# ---------------------------------------------------------------------------
# Branching
# ---------------------------------------------------------------------------


async def handle_condition(node: NodeSpec, inv: "Invocation") -> PortId | None:
    operator = node.get("operator")
    if operator:
        left = inv.resolve(node.get("left", ""), node)
        right = inv.resolve(node.get("right", ""), node)
        return _branch(ops.compare(operator, left, right))
    return _branch(inv.is_true(node.get("condition", "true"), node))


async def handle_comparison(node: NodeSpec, inv: "Invocation") -> PortId | None:
    left = inv.resolve(node.get("left", ""), node)
    right = inv.resolve(node.get("right", ""), node)
    result = ops.compare(node.get("operator", "=="), left, right)
    output = node.get("outputVar")
    if output:
        inv.bind(output, result)
    return _branch(result)


async def handle_permission(node: NodeSpec, inv: "Invocation") -> PortId | None:
    check_type = node.get("checkType", "user_id")
    mode = node.get("mode", "whitelist")
    values = [inv.render(v, node) for v in ops.coerce_array(node.get("values"))]
    event = inv.event

    if check_type == "user_id":
        matched = event.user_id in values
    elif check_type == "role":
        matched = False
        for role_id in values:
            if await _call_platform(node, "has_role", inv.platform.has_role(event, role_id)):
                matched = True
                break
    elif check_type == "permission":
        matched = bool(values) and all(p in event.member_permissions for p in values)
    else:
        raise NodeExecutionError(f"Unknown permission check '{check_type}'", node_id=node.id)

    allowed = not matched if mode == "blacklist" else matched
    return PortId.ALLOWED if allowed else PortId.DENIED


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------


def _loop_limit(node: NodeSpec, inv: "Invocation") -> int:
    ceiling = inv.config.max_loop_iterations
    configured = as_number(node.get("maxIterations"))
    if configured is None or configured <= 0:
        return ceiling
    return min(int(configured), ceiling)


def _absorb_loop_limit(node: NodeSpec, inv: "Invocation", error: LoopLimitExceeded) -> bool:
    """Bind the limit error to this loop's errorVar. False when it must propagate."""
    error_var = node.get("errorVar")
    if error.node_id != node.id or not error_var:
        return False
    inv.recover(error, error_var)
    return True


async def handle_for_loop(node: NodeSpec, inv: "Invocation") -> PortId | None:
    items = ops.coerce_array(inv.context.get(strip_braces(str(node.get("arrayVar", "array")))))
    iterator = node.get("iteratorVar", "item")
    limit = _loop_limit(node, inv)

    try:
        for index, item in enumerate(items):
            if index >= limit:
                raise LoopLimitExceeded(node.id, limit)
            inv.bind(iterator, item)
            await inv.run_loop_body(node)
    except LoopLimitExceeded as e:
        if not _absorb_loop_limit(node, inv, e):
            raise
    return PortId.COMPLETE


async def handle_while_loop(node: NodeSpec, inv: "Invocation") -> PortId | None:
    condition = node.get("condition", "false")
    limit = _loop_limit(node, inv)
    passes = 0

    try:
        while inv.is_true(condition, node):
            if passes >= limit:
                raise LoopLimitExceeded(node.id, limit)
            await inv.run_loop_body(node)
            passes += 1
    except LoopLimitExceeded as e:
        if not _absorb_loop_limit(node, inv, e):
            raise
    return PortId.COMPLETE


# ---------------------------------------------------------------------------
# External calls
# ---------------------------------------------------------------------------


async def handle_http_request(node: NodeSpec, inv: "Invocation") -> PortId | None:
    method = str(node.get("method", "GET")).upper()
    url = inv.render(node.get("url", ""), node)
    base = node.get("responseVar")

    headers = {
        str(key): inv.render(value, node)
        for key, value in ops.coerce_object(node.get("headers")).items()
    }
    request: dict[str, Any] = {"headers": headers}
    body = node.config.get("body")
    if body not in (None, "") and method != "GET":
        if isinstance(body, (dict, list)):
            request["json"] = body
        else:
            request["content"] = inv.render(body, node).encode("utf-8")

    try:
        response = await inv.http_request(method, url, **request)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        if base:
            inv.unbind(base, f"{base}_status")
        inv.recover(
            HttpCallFailed(f"{method} {url} failed: {e}", node_id=node.id, url=url),
            f"{base}_error" if base else None,
        )
        return None

    logger.debug(f"{method} {url} -> {response.status_code}")
    if base:
        try:
            payload: Any = response.json()
        except ValueError:
            payload = response.text
        inv.bind(base, payload)
        inv.bind(f"{base}_status", response.status_code)
        inv.unbind(f"{base}_error")
    return None


_DATABASE_OPERATIONS = {"get", "set", "delete", "list", "exists"}
_KEYED_OPERATIONS = {"get", "set", "delete", "exists"}
_READ_OPERATIONS = {"get", "list", "exists"}


async def handle_database(node: NodeSpec, inv: "Invocation") -> PortId | None:
    operation = node.get("operation", "get")
    if operation not in _DATABASE_OPERATIONS:
        raise NodeExecutionError(f"Unknown database operation '{operation}'", node_id=node.id)
    try:
        scope = StoreScope(node.get("scope", StoreScope.GUILD))
    except ValueError as e:
        raise NodeExecutionError(f"Unknown database scope '{node.get('scope')}'") from e

    key = inv.render(node.get("key", ""), node)
    if operation in _KEYED_OPERATIONS and not key:
        raise NodeExecutionError(f"Database {operation} needs a key", node_id=node.id)

    namespace = inv.namespace(scope)
    result_var = node.get("resultVar")
    value: Any = None
    try:
        if operation == "get":
            value = await inv.store.get(namespace, key)
        elif operation == "set":
            stored = inv.resolve(node.get("value", ""), node)
            await asyncio.shield(inv.store.set(namespace, key, stored))
        elif operation == "delete":
            await asyncio.shield(inv.store.delete(namespace, key))
        elif operation == "list":
            value = await inv.store.list(namespace)
        else:
            value = await inv.store.exists(namespace, key)
    except Exception as e:
        if result_var:
            inv.unbind(result_var)
        inv.recover(
            DatabaseOperationFailed(
                f"Database {operation} '{key}' failed: {e}", node_id=node.id, key=key
            ),
            f"{result_var}_error" if result_var else None,
        )
        return None

    if result_var and operation in _READ_OPERATIONS:
        inv.bind(result_var, value)
        inv.unbind(f"{result_var}_error")
    return None


# ---------------------------------------------------------------------------
# Data manipulation
# ---------------------------------------------------------------------------


async def handle_json(node: NodeSpec, inv: "Invocation") -> PortId | None:
    operation = node.get("operation", "parse")
    source = inv.context.get(strip_braces(str(node.get("inputVar", "json"))))
    output = node.get("outputVar", "parsed")

    try:
        if operation == "parse":
            value = ops.parse_json(source)
        elif operation == "stringify":
            value = ops.to_json(source)
        elif operation == "extract":
            value = ops.extract_path(source, str(node.get("path", "")))
        else:
            raise NodeExecutionError(f"Unknown JSON operation '{operation}'", node_id=node.id)
    except JsonOperationFailed as e:
        e.node_id = node.id
        inv.unbind(output)
        inv.recover(e, f"{output}_error")
        return None

    inv.bind(output, value)
    inv.unbind(f"{output}_error")
    return None


async def handle_math_operation(node: NodeSpec, inv: "Invocation") -> PortId | None:
    left = inv.resolve(node.get("value1", node.get("left", 0)), node)
    right = inv.resolve(node.get("value2", node.get("right", 0)), node)
    result = ops.apply_math(node.get("operation", "add"), left, right)
    inv.bind(node.get("resultVar") or node.get("outputVar") or "result", result)
    return None


async def handle_string_operation(node: NodeSpec, inv: "Invocation") -> PortId | None:
    operation = node.get("operation", "concat")
    output = node.get("resultVar") or node.get("outputVar") or "result"
    text = inv.render(node.get("input", node.get("string", "")), node)
    value: Any

    if operation == "concat":
        value = "".join(inv.render(s, node) for s in node.config.get("strings") or [])
    elif operation == "split":
        value = text.split(ops.unescape_separator(str(node.get("delimiter", ","))))
    elif operation == "replace":
        search = str(node.get("param1", node.get("search", "")))
        replacement = inv.render(node.get("param2", node.get("replace", "")), node)
        value = text.replace(search, replacement) if search else text
    elif operation == "uppercase":
        value = text.upper()
    elif operation == "lowercase":
        value = text.lower()
    elif operation == "trim":
        value = text.strip()
    elif operation == "substring":
        start = inv.resolve(node.get("start", 0), node)
        end = inv.resolve(node.get("end"), node)
        value = ops.substring(text, start, end)
    elif operation == "length":
        value = len(text)
    elif operation == "condition":
        conditions = node.config.get("conditions") or []
        value = ops.map_condition(text, conditions, str(node.get("default", "")))
    elif operation == "join":
        items = ops.coerce_array(inv.context.get(strip_braces(str(node.get("arrayVar", "array")))))
        separator = ops.unescape_separator(str(node.get("separator", ", ")))
        value = separator.join(stringify(item) for item in items)
    else:
        raise NodeExecutionError(f"Unknown string operation '{operation}'", node_id=node.id)

    inv.bind(output, value)
    return None


async def handle_array_operation(node: NodeSpec, inv: "Invocation") -> PortId | None:
    operation = node.get("operation", "create")
    output = node.get("resultVar") or node.get("outputVar")
    target = output or "array"
    array_name = strip_braces(str(node.get("arrayVar", "array")))

    if operation == "create":
        inv.bind(target, ops.split_items(inv.render(node.get("items", ""), node)))
        return None

    items = ops.coerce_array(inv.context.get(array_name))

    if operation == "push":
        items.append(inv.resolve(node.get("item", ""), node))
        inv.bind(array_name, items)
        if output and output != array_name:
            inv.bind(output, list(items))
    elif operation == "pop":
        popped = items.pop() if items else None
        inv.bind(array_name, items)
        inv.bind(target, popped)
    elif operation == "filter":
        expression = str(node.get("expression", "true"))
        inv.bind(
            target,
            [
                item
                for index, item in enumerate(items)
                if inv.is_true(expression, node, {"item": item, "index": index})
            ],
        )
    elif operation == "map":
        expression = str(node.get("expression", "item"))
        mapped = []
        for index, item in enumerate(items):
            try:
                mapped.append(inv.evaluate(expression, node, {"item": item, "index": index}))
            except ExpressionError as e:
                raise NodeExecutionError(
                    f"Map expression {expression!r} failed at index {index}: {e}",
                    node_id=node.id,
                ) from e
        inv.bind(target, mapped)
    elif operation == "length":
        inv.bind(target, len(items))
    elif operation == "join":
        separator = ops.unescape_separator(str(node.get("separator", ", ")))
        inv.bind(target, separator.join(stringify(item) for item in items))
    elif operation == "includes":
        needle = inv.resolve(node.get("item", ""), node)
        inv.bind(target, any(ops.compare("==", item, needle) for item in items))
    else:
        raise NodeExecutionError(f"Unknown array operation '{operation}'", node_id=node.id)
    return None


async def handle_object_operation(node: NodeSpec, inv: "Invocation") -> PortId | None:
    operation = node.get("operation", "create")
    output = node.get("outputVar") or "object"
    object_name = strip_braces(str(node.get("objectVar", "object")))

    if operation == "create":
        inv.bind(
            output,
            {
                str(pair["key"]): inv.resolve(pair.get("value", ""), node)
                for pair in node.config.get("pairs") or []
                if pair.get("key")
            },
        )
        return None

    obj = ops.coerce_object(inv.context.get(object_name))
    key = inv.render(node.get("key", ""), node)

    if operation == "get":
        inv.bind(output, obj.get(key))
    elif operation == "set":
        obj[key] = inv.resolve(node.get("value", ""), node)
        inv.bind(object_name, obj)
    elif operation == "keys":
        inv.bind(output, list(obj.keys()))
    elif operation == "values":
        inv.bind(output, list(obj.values()))
    elif operation == "has":
        inv.bind(output, key in obj)
    else:
        raise NodeExecutionError(f"Unknown object operation '{operation}'", node_id=node.id)
    return None


# ---------------------------------------------------------------------------
# Embeds and platform actions
# ---------------------------------------------------------------------------


def _drop_empty(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v not in (None, "")}


async def handle_embed_builder(node: NodeSpec, inv: "Invocation") -> PortId | None:
    config = node.config
    embed: dict[str, Any] = {}

    for name in ("title", "description"):
        if node.get(name) is not None:
            embed[name] = inv.render(node.get(name), node)
    if node.get("color") is not None:
        embed["color"] = ops.hex_color(inv.resolve(node.get("color"), node))

    author = config.get("author")
    if isinstance(author, dict):
        embed["author"] = _drop_empty(
            {
                "name": inv.render(author.get("name", ""), node),
                "icon_url": author.get("icon"),
                "url": author.get("url"),
            }
        )
    elif author:
        embed["author"] = {"name": inv.render(author, node)}

    for name in ("thumbnail", "image"):
        if node.get(name) is not None:
            embed[name] = {"url": inv.render(node.get(name), node)}

    footer = config.get("footer")
    if isinstance(footer, dict):
        embed["footer"] = _drop_empty(
            {"text": inv.render(footer.get("text", ""), node), "icon_url": footer.get("icon")}
        )
    elif footer:
        embed["footer"] = {"text": inv.render(footer, node)}

    if config.get("timestamp"):
        embed["timestamp"] = ops.utc_timestamp()

    fields = config.get("fields") or []
    if fields:
        embed["fields"] = [
            {
                "name": inv.render(f.get("name", ""), node),
                "value": inv.render(f.get("value", ""), node),
                "inline": bool(f.get("inline", False)),
            }
            for f in fields
        ]

    inv.bind(node.get("embedVar", "embed"), embed)
    return None


async def handle_embed_response(node: NodeSpec, inv: "Invocation") -> PortId | None:
    embed_name = strip_braces(str(node.get("embedVar", "embed")))
    embed = inv.context.get(embed_name)
    if not isinstance(embed, dict):
        raise NodeExecutionError(f"No embed bound to '{embed_name}'", node_id=node.id)

    ephemeral = bool(node.get("ephemeral", False))
    sent = await _call_platform(
        node, "send_embed", inv.platform.send_embed(inv.event, embed, ephemeral)
    )
    inv.respond(PluginResponse(node_id=node.id, embeds=[embed], ephemeral=ephemeral))
    inv.bind("_sent_message", sent)
    inv.bind("_message_id", sent.id)
    inv.bind("_channel_id", sent.channel_id)
    return None


async def _send_dm(node: NodeSpec, inv: "Invocation") -> Any:
    user_id = inv.render(node.get("userId", inv.event.user_id), node)
    message = inv.render(node.get("message", ""), node)
    await inv.platform.send_dm(user_id, message)


async def _add_reaction(node: NodeSpec, inv: "Invocation") -> Any:
    emoji = inv.render(node.get("emoji", "👍"), node)
    await inv.platform.add_reaction(inv.event, emoji, inv.context.get("_message_id"))


async def _add_multiple_reactions(node: NodeSpec, inv: "Invocation") -> Any:
    emojis = ops.coerce_array(inv.context.get(strip_braces(str(node.get("emojis", "emojis")))))
    for emoji in emojis:
        await inv.platform.add_reaction(inv.event, stringify(emoji), inv.context.get("_message_id"))


async def _check_role(node: NodeSpec, inv: "Invocation") -> Any:
    return await inv.platform.has_role(inv.event, inv.render(node.get("roleId", ""), node))


async def _add_role(node: NodeSpec, inv: "Invocation") -> Any:
    user_id = inv.render(node.get("userId", inv.event.user_id), node)
    await inv.platform.add_role(inv.event, user_id, inv.render(node.get("roleId", ""), node))


async def _remove_role(node: NodeSpec, inv: "Invocation") -> Any:
    user_id = inv.render(node.get("userId", inv.event.user_id), node)
    await inv.platform.remove_role(inv.event, user_id, inv.render(node.get("roleId", ""), node))


async def _kick_member(node: NodeSpec, inv: "Invocation") -> Any:
    user_id = inv.render(node.get("userId", inv.event.user_id), node)
    reason = inv.render(node.get("reason", "Kicked by bot"), node)
    await inv.platform.kick_member(inv.event, user_id, reason)


async def _ban_member(node: NodeSpec, inv: "Invocation") -> Any:
    user_id = inv.render(node.get("userId", inv.event.user_id), node)
    reason = inv.render(node.get("reason", "Banned by bot"), node)
    delete_days = int(as_number(inv.resolve(node.get("deleteDays", 0), node)) or 0)
    await inv.platform.ban_member(inv.event, user_id, reason, delete_days)


async def _create_channel(node: NodeSpec, inv: "Invocation") -> Any:
    return await inv.platform.create_channel(
        inv.event,
        inv.render(node.get("name", "new-channel"), node),
        str(node.get("type", "text")),
        inv.render(node.get("topic", ""), node),
    )


async def _delete_channel(node: NodeSpec, inv: "Invocation") -> Any:
    channel_id = inv.render(node.get("channelId", inv.event.channel_id), node)
    await inv.platform.delete_channel(inv.event, channel_id)


async def _collect_reactions(node: NodeSpec, inv: "Invocation") -> Any:
    time_ms = int(as_number(inv.resolve(node.get("time", 30000), node)) or 0)
    return await inv.platform.collect_reactions(
        inv.event,
        inv.render(node.get("channelId", inv.event.channel_id), node),
        inv.render(node.get("messageId", inv.context.get("_message_id") or ""), node),
        inv.render(node.get("emoji", "👍"), node),
        time_ms,
    )


async def _setup_single_choice_voting(node: NodeSpec, inv: "Invocation") -> Any:
    emojis = inv.context.get(strip_braces(str(node.get("emojis", "emojis"))))
    duration = inv.context.get(strip_braces(str(node.get("duration", "duration_ms"))))
    message_id = inv.context.get("_message_id")
    if not (message_id and emojis and duration):
        logger.info("Skipping single-choice voting: needs a sent message, emojis and a duration")
        return None
    await inv.platform.setup_single_choice_voting(
        inv.event,
        message_id,
        [stringify(emoji) for emoji in ops.coerce_array(emojis)],
        int(as_number(duration) or 0),
    )


async def _send_message(node: NodeSpec, inv: "Invocation") -> Any:
    logger.info(f"Discord action on '{node.display_name}' has no action type; nothing to do")


DiscordAction = Callable[[NodeSpec, "Invocation"], Awaitable[Any]]

# action name -> (implementation, default output variable or None)
DISCORD_ACTIONS: dict[str, tuple[DiscordAction, str | None]] = {
    "send_dm": (_send_dm, None),
    "add_reaction": (_add_reaction, None),
    "add_multiple_reactions": (_add_multiple_reactions, None),
    "check_role": (_check_role, "hasRole"),
    "add_role": (_add_role, None),
    "remove_role": (_remove_role, None),
    "kick_member": (_kick_member, None),
    "ban_member": (_ban_member, None),
    "create_channel": (_create_channel, "newChannel"),
    "delete_channel": (_delete_channel, None),
    "collect_reactions": (_collect_reactions, "reactions"),
    "setup_single_choice_voting": (_setup_single_choice_voting, None),
    "send_message": (_send_message, None),
}


async def handle_discord_action(node: NodeSpec, inv: "Invocation") -> PortId | None:
    action = node.get("actionType") or node.get("action", "send_message")
    entry = DISCORD_ACTIONS.get(action)
    if entry is None:
        raise NodeExecutionError(f"Unknown discord action '{action}'", node_id=node.id)

    run, default_output = entry
    result = await _call_platform(node, action, run(node, inv))
    if default_output is not None:
        inv.bind(node.get("outputVar", default_output), result)
    return None


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

HANDLERS: dict[NodeType, NodeHandler] = {
    NodeType.TRIGGER: handle_trigger,
    NodeType.RESPONSE: handle_response,
    NodeType.VARIABLE: handle_variable,
    NodeType.CONDITION: handle_condition,
    NodeType.PERMISSION: handle_permission,
    NodeType.ACTION: handle_action,
    NodeType.DATA: handle_data,
    NodeType.HTTP_REQUEST: handle_http_request,
    NodeType.MATH_OPERATION: handle_math_operation,
    NodeType.STRING_OPERATION: handle_string_operation,
    NodeType.ARRAY_OPERATION: handle_array_operation,
    NodeType.OBJECT_OPERATION: handle_object_operation,
    NodeType.DATABASE: handle_database,
    NodeType.JSON: handle_json,
    NodeType.EMBED_BUILDER: handle_embed_builder,
    NodeType.EMBED_RESPONSE: handle_embed_response,
    NodeType.DISCORD_ACTION: handle_discord_action,
    NodeType.FOR_LOOP: handle_for_loop,
    NodeType.WHILE_LOOP: handle_while_loop,
    NodeType.COMPARISON: handle_comparison,
}

_unhandled = set(NodeType) - set(HANDLERS)
if _unhandled:
    raise RuntimeError(f"Node handlers missing for: {sorted(_unhandled)}")
