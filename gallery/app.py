# gallery/app.py
# Run with: streamlit run gallery/app.py

import requests
import streamlit as st

from layoutlens.config import load_settings
from layoutlens.importer import abs_from_ref, group_shots, plan_slices

SERVER_URL = load_settings().SERVER_URL


def fetch_manifest(server: str) -> dict:
    resp = requests.get(f"{server.rstrip('/')}/manifest", timeout=30)
    resp.raise_for_status()
    return resp.json()


def fetch_meta(server: str, shot: dict):
    resp = requests.get(f"{server.rstrip('/')}/meta", params={"abs": abs_from_ref(shot["path"])}, timeout=30)
    if resp.status_code != 200:
        return None
    return resp.json()


def image_urls(server: str, shot: dict, height: int) -> list:
    """One URL per displayed band; tall shots are requested as slices."""
    base = f"{server.rstrip('/')}{shot['path']}"
    bands = plan_slices(height)
    if len(bands) == 1:
        return [base]
    return [f"{base}&sliceTop={top}&sliceHeight={h}" for top, h in bands]


def render_shot(server: str, shot: dict):
    st.caption(f"{shot['locale']} · {shot['breakpoint']}px")
    if not shot.get("ok", True):
        st.error(shot.get("error") or "Capture failed")
        return
    meta = fetch_meta(server, shot)
    if meta is None:
        st.warning("Image metadata unavailable.")
        return
    for url in image_urls(server, shot, meta["height"]):
        st.image(url, use_container_width=True)


def main():
    st.set_page_config(page_title="LayoutLens Gallery", layout="wide")
    st.sidebar.header("Run server")
    server = st.sidebar.text_input("Server URL", value=SERVER_URL)
    group_by = st.sidebar.radio("Group by", ["locale", "breakpoint"])

    try:
        manifest = fetch_manifest(server)
    except requests.RequestException as e:
        st.error(f"Could not load manifest from {server}: {e}")
        return

    st.title("LayoutLens Gallery")
    st.write(f"Run `{manifest.get('id')}` of {manifest.get('url')}")

    groups = group_shots(manifest.get("shots", []), by=group_by)
    if not groups:
        st.info("This run has no shots.")
        return
    columns = st.columns(len(groups))
    for col, (key, shots) in zip(columns, groups.items()):
        with col:
            st.header(str(key))
            for shot in shots:
                render_shot(server, shot)


if __name__ == "__main__":
    main()
