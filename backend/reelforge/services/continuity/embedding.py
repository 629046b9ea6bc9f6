import logging
import time
from typing import List, Tuple

import torch
from PIL import Image
from transformers import CLIPProcessor, CLIPModel

logger = logging.getLogger(__name__)

CLIP_MODEL_NAME = "openai/clip-vit-base-patch32"

# Lazy loading: Models are loaded on first use, not at import time
_clip_model = None
_clip_processor = None


def get_clip_model():
    """Lazy load CLIP model on first use."""
    global _clip_model, _clip_processor

    if _clip_model is None:
        logger.info("[CLIP] Loading model (first time, may take ~15-20s)...")
        start = time.time()
        _clip_model = CLIPModel.from_pretrained(CLIP_MODEL_NAME)
        _clip_processor = CLIPProcessor.from_pretrained(CLIP_MODEL_NAME)
        logger.info("[CLIP] Model loaded in %.2fs", time.time() - start)

    return _clip_model, _clip_processor


def image_embedding(path: str) -> List[float]:
    model, processor = get_clip_model()
    image = Image.open(path).convert("RGB")
    inputs = processor(images=image, return_tensors="pt")
    with torch.no_grad():
        outputs = model.get_image_features(**inputs)
    return outputs[0].cpu().numpy().tolist()


def dominant_colors(path: str, k: int = 5) -> List[Tuple[int, int, int]]:
    # Adaptive palette rather than real k-means
    small = Image.open(path).convert("RGB").resize((64, 64))
    palette = small.convert("P", palette=Image.Palette.ADAPTIVE, colors=k)
    palette_colors = palette.getpalette()
    color_counts = sorted(palette.getcolors(), reverse=True)

    colors = []
    for _count, idx in color_counts[:k]:
        colors.append(tuple(palette_colors[idx * 3: idx * 3 + 3]))
    return colors
