# src/agent/backend_llamacpp.py
"""
llama.cpp chat backend for the tool-calling agent.

Install with the `llm` extra (llama-cpp-python). The model is loaded once at
construction; create_chat_completion() is blocking and is called from a
worker thread by ToolCallingAgent.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List

from llama_cpp import Llama

from env.schema import LlmConfig

log = logging.getLogger(__name__)

JsonDict = Dict[str, Any]


class LlamaCppChatBackend:
    """ChatBackend backed by a local GGUF model."""

    def __init__(self, config: LlmConfig) -> None:
        if not config.model_path:
            raise ValueError("llm.model_path is required for the llama.cpp backend")

        model_path = Path(config.model_path)
        if not model_path.is_file():
            raise FileNotFoundError(f"Model file not found: {model_path}")

        self._config = config
        # llama.cpp treats a very large layer count as "offload everything".
        n_gpu_layers = config.gpu_layers if config.gpu_layers is not None else 9999
        n_threads = config.n_threads or max(1, (os.cpu_count() or 2) - 1)

        log.info(
            "Loading llama.cpp model %s (ctx=%d, gpu_layers=%d, threads=%d)",
            model_path,
            config.context_length,
            n_gpu_layers,
            n_threads,
        )
        self._llm = Llama(
            model_path=str(model_path),
            n_ctx=config.context_length,
            n_gpu_layers=n_gpu_layers,
            n_threads=n_threads,
            n_batch=512,
            chat_format=config.chat_format,
            verbose=False,
        )

    def create_chat_completion(
        self,
        messages: List[JsonDict],
        tools: List[JsonDict],
    ) -> JsonDict:
        return self._llm.create_chat_completion(
            messages=messages,
            tools=tools,
            tool_choice="auto",
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
        )
