import os
import time
import datetime
from typing import Optional
from io import BytesIO

import requests
import streamlit as st
from PIL import Image

BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")

STYLES = ["realistic", "minimalist", "abstract", "landscape", "retro", "space", "neon", "synthwave"]
TERMINAL = ("completed", "failed", "idle")


def start_generation(prompt: str, style: str) -> dict:
    """POST /api/generations -> session snapshot with generationId"""
    resp = requests.post(
        f"{BACKEND_URL}/api/generations", json={"prompt": prompt, "style": style}, timeout=30
    )
    resp.raise_for_status()
    return resp.json()


def get_generation(generation_id: str) -> Optional[dict]:
    resp = requests.get(f"{BACKEND_URL}/api/generations/{generation_id}", timeout=10)
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.json()


def cancel_generation(generation_id: str) -> None:
    requests.delete(f"{BACKEND_URL}/api/generations/{generation_id}", timeout=10)


def retry_generation(generation_id: str) -> dict:
    resp = requests.post(f"{BACKEND_URL}/api/generations/{generation_id}/retry", timeout=30)
    resp.raise_for_status()
    return resp.json()


def enhance_prompt(prompt: str, style: str) -> Optional[str]:
    resp = requests.post(
        f"{BACKEND_URL}/api/enhance-prompt", json={"prompt": prompt, "style": style}, timeout=30
    )
    if resp.status_code != 200:
        return None
    return resp.json().get("enhancedPrompt")


def request_mockup(product_id: int, variant_id: int, image_url: str) -> list:
    resp = requests.post(
        f"{BACKEND_URL}/api/printful/v2/mockups",
        json={"productId": product_id, "variantId": variant_id, "imageUrl": image_url},
        timeout=60,
    )
    resp.raise_for_status()
    return resp.json().get("mockups", [])


def download_image(image_url: str):
    """Download an image URL and open it with PIL"""
    try:
        resp = requests.get(image_url, timeout=30)
        resp.raise_for_status()
        img = Image.open(BytesIO(resp.content)).convert("RGB")
        return img, resp.content
    except (requests.RequestException, OSError) as e:
        st.error(f"Could not load image: {e}")
        return None, None


def poll_until_done(generation_id: str, timeout_sec: float = 180.0, poll_interval: float = 1.0):
    """Poll the session, rendering phase and progress, until it settles."""
    label = st.empty()
    bar = st.progress(0)
    start = time.time()
    while True:
        snapshot = get_generation(generation_id)
        if snapshot is None:
            return None

        label.markdown(f"**{snapshot['status'].title()}** · {snapshot['message']}")
        bar.progress(min(int(snapshot["progress"]), 100))

        if snapshot["status"] in TERMINAL and (snapshot["status"] != "completed" or snapshot.get("imageUrl")):
            return snapshot
        if time.time() - start > timeout_sec:
            return snapshot

        time.sleep(poll_interval)


# ==========================
# Config
# ==========================
st.set_page_config(page_title="AI Art Print Studio", page_icon="🎨", layout="wide")

st.title("🎨 Create your artwork")
st.caption("Describe a concept, we generate the art, you put it on a product.")

if "generation_id" not in st.session_state:
    st.session_state["generation_id"] = None
if "result" not in st.session_state:
    st.session_state["result"] = None

with st.sidebar:
    st.header("⚙️ Settings")
    style = st.selectbox("🖌️ Style", STYLES)
    st.markdown("---")
    st.markdown("### 💡 Examples")
    st.code("neon cityscape at night")
    st.code("a fox reading under a lamp")
    st.markdown("---")
    st.write("🔗 Backend:", BACKEND_URL)

prompt = st.text_area("💭 Describe your artwork", key="prompt")

col_go, col_enhance, col_cancel = st.columns(3)
go = col_go.button("✨ Generate", use_container_width=True, disabled=not prompt.strip())

if col_enhance.button("🪄 Enhance prompt", use_container_width=True, disabled=not prompt.strip()):
    enhanced = enhance_prompt(prompt, style)
    if enhanced:
        st.info(enhanced)

if col_cancel.button("🛑 Cancel", use_container_width=True, disabled=not st.session_state["generation_id"]):
    cancel_generation(st.session_state["generation_id"])
    st.session_state["result"] = None
    st.warning("Generation cancelled")

if go:
    try:
        snapshot = start_generation(prompt, style)
        st.session_state["generation_id"] = snapshot["generationId"]
        st.session_state["result"] = poll_until_done(snapshot["generationId"])
    except requests.RequestException as e:
        st.error(f"❌ Error: {e}")

result = st.session_state["result"]

if result and result["status"] == "failed":
    st.error("❌ Generation failed. Please try again.")
    if st.button("🔁 Retry"):
        try:
            retry_generation(st.session_state["generation_id"])
            st.session_state["result"] = poll_until_done(st.session_state["generation_id"])
        except requests.RequestException as e:
            st.error(f"❌ Error: {e}")
        st.rerun()

elif result and result["status"] == "completed" and result.get("imageUrl"):
    image_url = result["imageUrl"]
    image, img_bytes = download_image(image_url)
    if image:
        st.image(image, caption=f"✨ {result['message']}", use_container_width=True)
        ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        st.download_button("⬇️ Download", data=img_bytes, file_name=f"artwork_{ts}.png", mime="image/png")
        st.markdown(f"🔗 [Open original]({image_url})")

    st.markdown("---")
    st.subheader("👕 Preview on a product")
    product_id = st.number_input("Catalog product id", min_value=1, value=71, step=1)
    variant_id = st.number_input("Variant id", min_value=1, value=4012, step=1)
    if st.button("Generate mockup"):
        try:
            with st.spinner("Rendering mockup..."):
                mockups = request_mockup(int(product_id), int(variant_id), image_url)
            for mockup in mockups:
                st.image(mockup.get("mockup_url"), caption=mockup.get("placement"))
            if not mockups:
                st.warning("⚠️ No mockups returned")
        except requests.RequestException as e:
            st.error(f"❌ Mockup failed: {e}")
