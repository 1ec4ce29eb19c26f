"""Function calling loop: tool-call policy, streamed call accumulation, invocation and orchestration."""

__all__ = ["tool_call_behavior", "accumulator", "function_invoker", "orchestrator"]
