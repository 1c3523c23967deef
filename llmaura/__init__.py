"""LLMaura — provision Ollama and Open WebUI on a Linux host."""

__version__ = "0.1.0"
