# scripts/setup_onnx.py
"""Export the embedding model to ONNX and quantize it to INT8.

Writes ``<ONNX_CACHE_DIR>/<org>_<model>/model_quantized.onnx`` and
``tokenizer.json``, the layout expected by ``config.onnx_embedding``.

Requires the ``setup`` extra: pip install -e ".[setup]"
"""

import shutil
import sys
from pathlib import Path

from onnxruntime.quantization import QuantType, quantize_dynamic
from optimum.onnxruntime import ORTModelForFeatureExtraction
from transformers import AutoTokenizer

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config.config import get_settings  # noqa: E402


def export_and_quantize(model_id: str, cache_root: Path) -> None:
    output_dir = cache_root / model_id.replace("/", "_")

    quant_path = output_dir / "model_quantized.onnx"
    float_path = output_dir / "float32"

    if quant_path.exists():
        print(f"✅ {model_id} already exists.")
        return

    print(f"⏳ Exporting {model_id}...")

    # 1. Export to ONNX (Float32)
    model = ORTModelForFeatureExtraction.from_pretrained(model_id, export=True)
    model.save_pretrained(float_path)

    # 2. Save Tokenizer (writes tokenizer.json)
    tokenizer = AutoTokenizer.from_pretrained(model_id)
    tokenizer.save_pretrained(output_dir)

    # 3. Copy Config
    shutil.copy(float_path / "config.json", output_dir / "config.json")

    # 4. Quantize to INT8
    print(f"📉 Quantizing {model_id}...")
    quantize_dynamic(
        model_input=float_path / "model.onnx",
        model_output=quant_path,
        weight_type=QuantType.QUInt8,
    )

    # 5. Cleanup float32 to save space
    shutil.rmtree(float_path)
    print(f"✨ Finished {model_id}")


def main():
    settings = get_settings()
    cache_root = Path(settings.ONNX_CACHE_DIR)
    cache_root.mkdir(parents=True, exist_ok=True)

    export_and_quantize(settings.EMBEDDING_MODEL, cache_root)

    print("\n🚀 Embedding model is ready for deployment!")


if __name__ == "__main__":
    main()
