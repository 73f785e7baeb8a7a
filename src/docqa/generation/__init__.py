"""
Generation — prompt assembly and the LLM client.

Prompts are built to fit the model's context window; the client passes
them to the model unmodified and surfaces the answer or the failure.
"""
