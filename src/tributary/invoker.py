"""Executes the tool calls of one round against the request's tools."""

import json
import logging

from tributary import instrumentation
from tributary.errors import ToolInvocationError
from tributary.streaming import ToolCall, ToolResult
from tributary.tools import ArgumentCheck, LLMRecoverableError, Tool

logger = logging.getLogger(__name__)


def _decode_arguments(call: ToolCall) -> dict:
    try:
        return call.parsed_arguments()
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in arguments for {call.name}: {e}")
        return {}


def format_validation_error(tool_obj: Tool, check: ArgumentCheck) -> str:
    return (
        f"Parameter validation error: {check.problem}. "
        f"Expected: [{tool_obj.expected_parameters()}]. "
        f"Received: {json.dumps(check.arguments, default=str)}. "
        "Please provide correct parameter types and names."
    )


def format_runtime_error(e: Exception) -> str:
    return (
        f"Tool execution error: {e}. This error occurred during tool "
        "execution, not due to invalid parameters."
    )


async def call_tool(
    tools: list[Tool], call: ToolCall, handle_errors: bool = True,
) -> ToolResult:
    """Run a single tool call and return its :class:`ToolResult`.

    Failures are contained according to the tool's policy.  Only a tool
    built with :meth:`Tool.without_error_handling` (or an unknown tool
    name when *handle_errors* is ``False``) raises
    :class:`ToolInvocationError`.
    """
    args = _decode_arguments(call)
    tool_obj = next((t for t in tools if t.name == call.name), None)
    if tool_obj is None:
        if not handle_errors:
            raise ToolInvocationError.not_found(call.name)
        logger.warning(f"Tool not found: {call.name}")
        return ToolResult(
            tool_call_id=call.id, tool_name=call.name, args=args,
            result=f"Error: tool '{call.name}' not found", is_error=True,
        )

    async with instrumentation.tool_span(call.name, call.id) as span:
        try:
            check = tool_obj.check_arguments(args)
        except Exception as e:
            # The signature itself could not be turned into a validator.
            logger.warning(f"Could not validate arguments for {call.name}: {e}")
            check = ArgumentCheck(
                arguments=args, problem="Invalid parameters", errors=[str(e)],
            )
        if not check.ok:
            error = TypeError("; ".join(check.errors))
            instrumentation.record_error(span, error)
            if not tool_obj.handle_errors:
                raise ToolInvocationError.invalid_parameters(
                    call.name, "; ".join(check.errors),
                ) from error
            if tool_obj.failed_handler is not None:
                output = tool_obj.failed_handler(error, args)
            else:
                output = format_validation_error(tool_obj, check)
            logger.warning(f"Tool {call.name} rejected arguments {args}: {check.problem}")
            return ToolResult(
                tool_call_id=call.id, tool_name=call.name, args=args,
                result=output, is_error=True,
            )

        logger.info(f"Calling {call.name} with {check.arguments}")
        try:
            result = await tool_obj(**check.arguments)
        except LLMRecoverableError as e:
            logger.info(f"Tool {call.name} requested retry: {e}")
            return ToolResult(
                tool_call_id=call.id, tool_name=call.name, args=args,
                result=str(e),
            )
        except Exception as e:
            instrumentation.record_error(span, e)
            if not tool_obj.handle_errors:
                raise ToolInvocationError.failed(call.name, e) from e
            logger.warning(f"Tool {call.name} raised: {e}")
            if tool_obj.failed_handler is not None:
                output = tool_obj.failed_handler(e, args)
            else:
                output = format_runtime_error(e)
            return ToolResult(
                tool_call_id=call.id, tool_name=call.name, args=args,
                result=output, is_error=True,
            )

    return ToolResult(
        tool_call_id=call.id, tool_name=call.name, args=args,
        result=result.output,
    )


async def call_tools(
    tools: list[Tool], calls: list[ToolCall], handle_errors: bool = True,
) -> list[ToolResult]:
    """Run every call in order; results line up with *calls*."""
    return [await call_tool(tools, call, handle_errors) for call in calls]
