"""Anatomy catalog shared by question normalization, grading and the library tabs.

3D models are identified by name and expose clickable parts. 2D diagrams carry
hotspots whose centres are percentages of the rendered image and whose radii
are in pixels, matching how the front end positions them.
"""
import math

MODELS = {
    "Heart": ["Left Ventricle", "Right Ventricle", "Aorta"],
    "Skeleton": ["Skull", "Ribcage", "Pelvis"],
}

DIAGRAMS = {
    "heart": {
        "title": "Heart",
        "src": "/diagrams/heart.jpg",
        "hotspots": [
            {"id": "1", "label": "Superior Vena Cava", "cx": 30, "cy": 20, "r": 15},
            {"id": "2", "label": "Aorta", "cx": 50, "cy": 15, "r": 20},
        ],
    },
}


def _fold(value):
    return " ".join(str(value or "").split()).lower()


def resolve_model(name):
    """Return the catalog spelling of a model name, or None."""
    key = _fold(name)
    for model in MODELS:
        if _fold(model) == key:
            return model
    return None


def resolve_part(model, label):
    """Return the catalog spelling of a part on ``model``, or None."""
    model = resolve_model(model)
    if not model:
        return None
    key = _fold(label)
    for part in MODELS[model]:
        if _fold(part) == key:
            return part
    return None


def diagram_labels(diagram_id):
    diagram = DIAGRAMS.get(diagram_id)
    if not diagram:
        return []
    return [h["label"] for h in diagram["hotspots"]]


def hit_test(diagram_id, x_pct, y_pct, width, height):
    """Return the label of the hotspot under a click, or None.

    ``x_pct``/``y_pct`` locate the click as percentages of the rendered image,
    ``width``/``height`` give its rendered size in pixels. When circles
    overlap the hotspot whose centre is closest wins.
    """
    diagram = DIAGRAMS.get(diagram_id)
    if diagram is None:
        raise KeyError(diagram_id)
    best = None
    best_dist = None
    for spot in diagram["hotspots"]:
        dx = (x_pct - spot["cx"]) / 100.0 * width
        dy = (y_pct - spot["cy"]) / 100.0 * height
        dist = math.hypot(dx, dy)
        if dist <= spot["r"] and (best_dist is None or dist < best_dist):
            best, best_dist = spot, dist
    return best["label"] if best else None


def catalog_prompt():
    """Describe the catalog for question-generation prompts."""
    lines = ["Available 3D models and their clickable parts:"]
    for model, parts in MODELS.items():
        lines.append(f"- {model}: {', '.join(parts)}")
    lines.append("Available diagrams and their labeled structures:")
    for diagram_id, diagram in DIAGRAMS.items():
        lines.append(f"- {diagram_id} ({diagram['src']}): {', '.join(diagram_labels(diagram_id))}")
    return "\n".join(lines)
