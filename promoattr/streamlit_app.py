"""
Streamlit front-end for popup promo attribution.

- Accepts one or more HAR captures (DevTools "Save all as HAR" or Playwright
  `record_har_path`), one per page visit.
- Replays each through `extract()` with an optional page URL / route hint /
  code filter, so attribution decisions can be checked without a browser.
- Shows the winner per capture, every accepted candidate, and a combined table.
- Exposes CSV/JSON downloads (per capture and combined).

All processing happens locally.
"""

from __future__ import annotations

# --- ensure package imports work when launched directly ---
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import json
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

# --- Internal modules ---
from promoattr.config import get_settings
from promoattr.models.schemas import AttributedCandidate, ExtractionResult
from promoattr.services.extract import attribute, extract, page_identity_for
from promoattr.services.har import load_har, page_url_from_har
from promoattr.services.rank import rank

# ---------------------------- Page setup ----------------------------

st.set_page_config(page_title="Popup Promo Attribution (Local)", layout="wide")
st.title("Popup Promo Attribution (Local)")
st.caption("Replay captured traffic → keep only codes that belong to the inspected page → recover discounts.")

# ---------------------------- Sidebar help ----------------------------

with st.sidebar:
    st.header("How it works")
    st.markdown(
        "- Each HAR file is one page visit; nothing leaves this machine.\n"
        "- Codes are accepted only when the response is tied to the page "
        "(route in URL/body, popup record, or query variables naming the page).\n"
        "- Feed/GraphQL traffic about other pages is rejected.\n"
        "- Ranking prefers codes with a discount, then structured payloads, then recency."
    )
    st.divider()
    st.markdown("**Tip:** leave the page URL empty to use the first HTML document in the HAR.")

# ---------------------------- Uploader & Controls ----------------------------

uploaded = st.file_uploader(
    "Upload one or more HAR captures",
    type=["har", "json"],
    accept_multiple_files=True,
)

col_in1, col_in2, col_in3 = st.columns(3)
with col_in1:
    page_url_in = st.text_input("Page URL (optional)", value="")
with col_in2:
    route_in = st.text_input("Route hint (optional)", value="")
with col_in3:
    code_in = st.text_input("Only this code (optional)", value="")

run_btn = st.button("Run Attribution", type="primary")


# ---------------------------- Helpers ----------------------------

def result_to_row(name: str, page_url: Optional[str], res: Optional[ExtractionResult]) -> Dict[str, Any]:
    d = res.discount if res else None
    return {
        "capture": name,
        "page_url": page_url,
        "code": res.code if res else None,
        "percent_off": d.percent_off if d else None,
        "amount_off": d.amount_off if d else None,
        "currency": d.currency if d else None,
        "source_url": res.source_url if res else None,
        "content_type": res.content_type if res else None,
        "rule": res.provenance.get("rule") if res else None,
    }


def candidate_to_row(c: AttributedCandidate) -> Dict[str, Any]:
    d = c.discount
    return {
        "code": c.code,
        "score": round(c.score, 3),
        "rule": c.rule,
        "percent_off": d.percent_off if d else None,
        "amount_off": d.amount_off if d else None,
        "currency": d.currency if d else None,
        "content_type": c.content_type,
        "source_url": c.source_url,
    }


# ---------------------------- Main run ----------------------------

rows: List[Dict[str, Any]] = []
details: List[Dict[str, Any]] = []

if run_btn and uploaded:
    settings = get_settings()
    for uf in uploaded:
        har = json.loads(uf.read().decode("utf-8"))
        responses = load_har(har)
        page_url = page_url_in.strip() or page_url_from_har(har)
        hint = route_in.strip() or None
        only = code_in.strip() or None

        identity = page_identity_for(page_url, current_route=hint)
        res = extract(page_url, responses, identity=identity, current_route=hint,
                      only_this_code=only, settings=settings)
        cands = rank(attribute(responses, identity, only, settings), hint or identity.route)

        rows.append(result_to_row(uf.name, page_url, res))
        details.append({"name": uf.name, "identity": identity, "responses": len(responses),
                        "candidates": cands, "result": res})

# ---------------------------- Display results ----------------------------

if not details:
    st.info("Upload HAR captures and click **Run Attribution** to see results.")
else:
    tabs = st.tabs([d["name"] for d in details])
    for tab, d in zip(tabs, details):
        with tab:
            res = d["result"]
            if res is None:
                st.warning("No promo code belongs to this page.")
            else:
                st.success(f"**{res.code}** from {res.source_url}")
                st.json(res.model_dump())

            st.subheader("Accepted candidates (de-duplicated, best first)")
            df = pd.DataFrame([candidate_to_row(c) for c in d["candidates"]])
            st.dataframe(df, use_container_width=True)

            with st.expander("Debug: page identity & capture stats"):
                st.write(d["identity"].model_dump())
                st.write({"responses": d["responses"], "accepted": len(d["candidates"])})

    st.markdown("## Combined Results")
    combined_df = pd.DataFrame(rows)
    st.dataframe(combined_df, use_container_width=True)

    col_all1, col_all2 = st.columns(2)
    with col_all1:
        st.download_button(
            "Download CSV (combined)",
            data=combined_df.to_csv(index=False),
            file_name="popup_codes.csv",
            mime="text/csv",
            use_container_width=True
        )
    with col_all2:
        st.download_button(
            "Download JSON (combined)",
            data=json.dumps(rows, indent=2),
            file_name="popup_codes.json",
            mime="application/json",
            use_container_width=True
        )
