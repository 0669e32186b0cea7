"""
CrowdCountFusion - Viewer UI
============================

Upload an image, send it to the analysis service and draw the result:
fused count with its note, detection and face boxes, and the density
heatmap.

Architecture:
    - ANALYSIS comes from the CrowdCountFusion service via HTTP
    - Model backend is configured in the service config.yaml, NOT here
    - Overlays are drawn locally with OpenCV

Usage:
    streamlit run ui/app.py

Environment:
    CROWD_FUSION_URL  - service HTTP root (default: http://localhost:8002)
"""

import os
from typing import List, Optional, Tuple

import cv2
import numpy as np
import requests
import streamlit as st


# =============================================================================
# Configuration
# =============================================================================

SERVICE_URL = os.getenv("CROWD_FUSION_URL", "http://localhost:8002")

KIND_LABELS = {
    "direct_detection": "Object detection",
    "density_regression": "Crowd density",
    "face_demographic": "Face analysis",
    "zero_shot_crop": "Zero-shot crops",
}

# BGR colors per box source
BOX_COLORS = {
    "direct_detection": (0, 200, 0),
    "face_demographic": (255, 160, 0),
}

st.set_page_config(
    page_title="CrowdCountFusion Viewer",
    page_icon="👥",
    layout="wide",
)


# =============================================================================
# Networking helpers
# =============================================================================

def fetch_estimators() -> Optional[List[dict]]:
    """Per-kind availability from the service."""
    try:
        r = requests.get(f"{SERVICE_URL}/estimators", timeout=2)
        if r.status_code == 200:
            return r.json()
    except requests.RequestException:
        pass
    return None


def fetch_ready() -> bool:
    """Check whether every estimator has settled."""
    try:
        r = requests.get(f"{SERVICE_URL}/ready", timeout=2)
        return r.status_code == 200
    except requests.RequestException:
        return False


def analyze(
    data: bytes,
    filename: str,
    enabled: List[str],
    show_people: bool,
    show_animals: bool,
) -> Tuple[Optional[dict], Optional[str]]:
    """
    POST the image to /analyze.

    Returns:
        (response JSON, None) on success, (None, error message) otherwise
    """
    params = {
        "enabled": enabled or ["direct_detection"],
        "show_people": str(show_people).lower(),
        "show_animals": str(show_animals).lower(),
    }
    try:
        r = requests.post(
            f"{SERVICE_URL}/analyze",
            params=params,
            files={"file": (filename, data)},
            timeout=120,
        )
    except requests.RequestException as e:
        return None, f"Service unreachable: {e}"

    if r.status_code != 200:
        try:
            detail = r.json().get("detail", r.text)
        except ValueError:
            detail = r.text
        return None, f"Analysis failed ({r.status_code}): {detail}"
    return r.json(), None


# =============================================================================
# Overlay drawing
# =============================================================================

def draw_heatmap(image: np.ndarray, density: Optional[dict]) -> np.ndarray:
    """Blend the density grid over the image as a JET heatmap."""
    if not density or not density.get("grid"):
        return image
    h, w = image.shape[:2]
    grid = np.array(density["grid"], dtype=np.float32)
    peak = density.get("max_value") or float(grid.max())
    if peak <= 0:
        return image

    grid_u8 = (np.clip(grid / peak, 0, 1) * 255).astype(np.uint8)
    resized = cv2.resize(grid_u8, (w, h), interpolation=cv2.INTER_LINEAR)
    heatmap = cv2.applyColorMap(resized, cv2.COLORMAP_JET)
    return cv2.addWeighted(heatmap, 0.4, image, 0.6, 0)


def draw_boxes(image: np.ndarray, boxes: List[dict]) -> np.ndarray:
    """Draw labelled boxes from the response."""
    result = image.copy()
    for box in boxes:
        color = BOX_COLORS.get(box["source"], (200, 200, 200))
        p1 = (int(box["xmin"]), int(box["ymin"]))
        p2 = (int(box["xmax"]), int(box["ymax"]))
        cv2.rectangle(result, p1, p2, color, 2)
        cv2.putText(
            result, f"{box['label']} {box['score']:.2f}", (p1[0], max(12, p1[1] - 4)),
            cv2.FONT_HERSHEY_SIMPLEX, 0.45, color, 1, cv2.LINE_AA,
        )
    return result


def composite(image: np.ndarray, result: dict, show_heatmap: bool, show_boxes: bool) -> np.ndarray:
    """
    Composite overlays ON TOP of the uploaded image.

    Order (bottom to top):
        1. Uploaded image (base layer)
        2. Density heatmap (alpha ~0.4)
        3. Detection and face boxes
    """
    out = image
    if show_heatmap:
        out = draw_heatmap(out, result.get("density"))
    if show_boxes:
        out = draw_boxes(out, result.get("boxes", []))
    return out


# =============================================================================
# Main UI
# =============================================================================

def main():
    # ── Sidebar ───────────────────────────────────────────────────────────────
    with st.sidebar:
        st.header("Estimators")
        estimators = fetch_estimators()
        enabled = []
        if estimators is None:
            st.error("🔴 Service Offline")
        else:
            for row in estimators:
                kind = row["kind"]
                loaded = row["availability"] == "loaded"
                label = KIND_LABELS.get(kind, kind)
                if st.checkbox(label, value=loaded, disabled=not loaded, key=kind):
                    enabled.append(kind)
                if not loaded:
                    st.caption(f"{label}: {row['availability']} {row.get('detail') or ''}")
            if not fetch_ready():
                st.warning("🟡 Models still loading")

        st.divider()
        st.header("Display")
        show_people = st.checkbox("Show people", value=True)
        show_animals = st.checkbox("Show animals", value=True)
        show_heatmap = st.checkbox("Show density heatmap", value=True)
        show_boxes = st.checkbox("Show boxes", value=True)

        st.divider()
        st.text(f"Service: {SERVICE_URL}")
        st.caption("Model backend is set in the service config.yaml, not in this UI.")

    st.title("CrowdCountFusion")
    upload = st.file_uploader("Upload an image", type=["jpg", "jpeg", "png", "bmp", "webp"])
    if upload is None:
        st.info("Upload an image to count the people in it")
        return

    data = upload.getvalue()
    image = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        st.error("Could not read this image")
        return

    with st.spinner("Analyzing..."):
        result, error = analyze(data, upload.name, enabled, show_people, show_animals)
    if error:
        st.error(error)
        return

    left_col, right_col = st.columns([3, 1])

    with left_col:
        composited = composite(image, result, show_heatmap, show_boxes)
        st.image(cv2.cvtColor(composited, cv2.COLOR_BGR2RGB), use_container_width=True)

    with right_col:
        st.metric("People", result["final_count"])
        st.caption(result["note"])
        st.divider()

        for kind, count in result.get("estimators", {}).items():
            st.text(f"{KIND_LABELS.get(kind, kind)}: {count}")

        categories = result.get("categories") or {}
        if categories:
            st.divider()
            st.caption("Categories")
            for label, count in categories.items():
                st.text(f"  {label}: {count}")
        if result.get("animal_count") is not None:
            st.text(f"Animals: {result['animal_count']}")

        demographics = result.get("demographics")
        if demographics:
            st.divider()
            st.caption("Faces")
            st.text(f"  Men:      {demographics['men']}")
            st.text(f"  Women:    {demographics['women']}")
            st.text(f"  Children: {demographics['children']}")
            if demographics.get("average_age") is not None:
                st.text(f"  Avg age:  {demographics['average_age']:.1f}")

        zero_shot = result.get("zero_shot")
        if zero_shot:
            st.divider()
            st.caption(f"Zero-shot sample ({zero_shot['sampled_total']} crops)")
            st.text(f"  Man: {zero_shot['men']}  Woman: {zero_shot['women']}  Child: {zero_shot['child']}")

        for failure in result.get("failures", []):
            st.warning(failure["message"])


if __name__ == "__main__":
    main()
