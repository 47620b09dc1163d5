__all__ = [
    "models",
    "state_machine",
    "prompts",
    "llm_provider",
    "logging",
]
