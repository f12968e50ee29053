"""CLIP model names and the width of the embeddings they produce."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ClipModelInfo:
    name: str
    dim_size: int


_CLIP_DIM_SIZES: dict[str, int] = {
    "RN50__openai": 1024,
    "RN50__yfcc15m": 1024,
    "RN50__cc12m": 1024,
    "RN101__openai": 512,
    "RN101__yfcc15m": 512,
    "RN50x4__openai": 640,
    "RN50x16__openai": 768,
    "RN50x64__openai": 1024,
    "ViT-B-32__openai": 512,
    "ViT-B-32__laion2b_e16": 512,
    "ViT-B-32__laion400m_e31": 512,
    "ViT-B-32__laion400m_e32": 512,
    "ViT-B-32__laion2b-s34b-b79k": 512,
    "ViT-B-16__openai": 512,
    "ViT-B-16__laion400m_e31": 512,
    "ViT-B-16__laion400m_e32": 512,
    "ViT-B-16-plus-240__laion400m_e31": 640,
    "ViT-B-16-plus-240__laion400m_e32": 640,
    "ViT-L-14__openai": 768,
    "ViT-L-14__laion400m_e31": 768,
    "ViT-L-14__laion400m_e32": 768,
    "ViT-L-14__laion2b-s32b-b82k": 768,
    "ViT-L-14-336__openai": 768,
    "ViT-H-14__laion2b-s32b-b79k": 1024,
    "ViT-g-14__laion2b-s12b-b42k": 1024,
    "LABSE-Vit-L-14": 768,
    "XLM-Roberta-Large-Vit-B-32": 512,
    "XLM-Roberta-Large-Vit-B-16Plus": 640,
    "XLM-Roberta-Large-Vit-L-14": 768,
    "nllb-clip-base-siglip__v1": 768,
    "nllb-clip-large-siglip__v1": 1152,
}

DEFAULT_CLIP_MODEL = "ViT-B-32__openai"


def clean_model_name(model_name: str) -> str:
    """Strip JSON quoting and the hub organisation prefix from a model name."""
    name = model_name.strip().strip('"')
    if "/" in name:
        name = name.rsplit("/", 1)[1]
    return name


def get_clip_model_info(model_name: str) -> ClipModelInfo:
    """
    Look up a CLIP model.

    Raises:
        ValueError: If the model is unknown
    """
    name = clean_model_name(model_name)
    dim_size = _CLIP_DIM_SIZES.get(name)
    if dim_size is None:
        raise ValueError(f"Unknown CLIP model: {model_name}")
    return ClipModelInfo(name=name, dim_size=dim_size)
