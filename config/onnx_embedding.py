"""ONNX-optimized embedding backend.

Uses only onnxruntime and the tokenizers library - no torch dependency.
Model files are produced by ``scripts/setup_onnx.py``.
"""

from pathlib import Path
from typing import List, Optional

import numpy as np
import onnxruntime as ort
from loguru import logger
from tokenizers import Tokenizer

DEFAULT_MODEL_NAME = "mixedbread-ai/mxbai-embed-xsmall-v1"
DEFAULT_CACHE_DIR = "./onnx_model_cache"


class ONNXEmbeddingModel:
    """ONNX-based embedding model for CPU inference.

    Produces attention-masked mean-pooled, L2-normalised sentence embeddings.

    Usage:
        model = ONNXEmbeddingModel()
        embeddings = model.get_text_embedding_batch(["Hello world", "Test text"])

    Attributes:
        embed_dim: Embedding dimension read from the model's output shape, or
            None when the graph leaves it dynamic.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        cache_dir: str = DEFAULT_CACHE_DIR,
        num_threads: int = 0,
    ):
        self.model_dir = Path(cache_dir) / model_name.replace("/", "_")
        self.model_path = self.model_dir / "model_quantized.onnx"
        self.tokenizer_path = self.model_dir / "tokenizer.json"

        if not self.model_path.exists():
            raise RuntimeError(
                f"Model missing: {self.model_path}. Run 'python scripts/setup_onnx.py' to download."
            )

        if not self.tokenizer_path.exists():
            raise RuntimeError(
                f"Tokenizer missing: {self.tokenizer_path}. Run 'python scripts/setup_onnx.py' to download."
            )

        logger.info("Loading ONNX model from {}", self.model_dir)

        self.tokenizer = Tokenizer.from_file(str(self.tokenizer_path))
        self.tokenizer.enable_padding(direction="right", pad_id=0, pad_token="[PAD]")
        self.tokenizer.enable_truncation(max_length=512)

        sess_options = ort.SessionOptions()
        sess_options.intra_op_num_threads = num_threads  # 0 = all cores
        sess_options.graph_optimization_level = (
            ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        )

        self.session = ort.InferenceSession(
            str(self.model_path),
            sess_options=sess_options,
            providers=["CPUExecutionProvider"],
        )
        self.input_names = {x.name for x in self.session.get_inputs()}
        output = self.session.get_outputs()[0]
        self.output_name = output.name

        hidden = output.shape[-1] if output.shape else None
        self.embed_dim: Optional[int] = hidden if isinstance(hidden, int) else None

        logger.info(
            "ONNX model loaded. Inputs: {} | Dim: {}", self.input_names, self.embed_dim
        )

    def get_text_embedding_batch(self, texts: List[str]) -> List[List[float]]:
        """Compute embeddings for a batch of texts.

        Args:
            texts: List of strings to embed.

        Returns:
            List of unit-length embeddings, one per input text.
        """
        if not texts:
            return []

        encodings = self.tokenizer.encode_batch(texts)

        input_ids = np.array([enc.ids for enc in encodings], dtype=np.int64)
        attention_mask = np.array(
            [enc.attention_mask for enc in encodings], dtype=np.int64
        )

        ort_inputs = {
            "input_ids": input_ids,
            "attention_mask": attention_mask,
        }

        if "token_type_ids" in self.input_names:
            ort_inputs["token_type_ids"] = np.zeros_like(input_ids, dtype=np.int64)

        hidden_states = self.session.run([self.output_name], ort_inputs)[0]

        # Mean pooling with attention mask
        mask = attention_mask[:, :, None]
        sum_mask = mask.sum(axis=1)
        sum_mask[sum_mask == 0] = 1
        pooled = (hidden_states * mask).sum(axis=1) / sum_mask

        norms = np.linalg.norm(pooled, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return (pooled / norms).tolist()
