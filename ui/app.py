"""
Goal Matching UI

A Streamlit application for browsing goal-compatibility matches within a
seed population and for submitting peer feedback on goals.

Layout: sidebar for the acting user and filters, goal outline on the
left, match cards on the right, feedback form below. Each life domain has
its own chip colour.

Run with: streamlit run ui/app.py
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pandas as pd
import streamlit as st

from goalmatch.configs import load_config
from goalmatch.data_loading import goal_trees_to_frame, load_goal_trees
from goalmatch.domain import Domain, FeedbackGrade
from goalmatch.engine import create_engine_from_config
from goalmatch.errors import GoalMatchError

# =============================================================================
# CONSTANTS
# =============================================================================

CONFIG_PATH = project_root / "configs" / "config.yaml"
PAGE_SIZE = 10

# =============================================================================
# DESIGN SYSTEM - Palette, domain chips & card styles
# =============================================================================

PALETTE = {
    "page": "#F7F6F3",
    "card": "#FFFFFF",
    "ink": "#1F2933",
    "muted": "#616E7C",
    "accent": "#2B6CB0",
    "track": "#E4E7EB",
}

# One chip colour per life domain, keyed by enum member
DOMAIN_COLORS = {
    Domain.CAREER: "#2B6CB0",
    Domain.INVESTING: "#2F855A",
    Domain.FITNESS: "#C05621",
    Domain.ACADEMICS: "#6B46C1",
    Domain.MENTAL_HEALTH: "#319795",
    Domain.PHILOSOPHICAL_DEVELOPMENT: "#744210",
    Domain.CREATIVE_PURSUITS: "#B83280",
    Domain.ROMANTIC_EXPLORATION: "#C53030",
    Domain.SOCIAL_ENGAGEMENT: "#D69E2E",
}


def domain_chip(domain: Domain) -> str:
    color = DOMAIN_COLORS.get(domain, PALETTE["muted"])
    return f'<span class="domain-chip" style="border-color: {color}; color: {color};">{domain.value}</span>'


def inject_custom_css():
    """Card, chip and score-bar styles."""
    st.markdown(f"""
    <style>
        .stApp {{ background-color: {PALETTE['page']}; }}
        h1, h2, h3 {{ color: {PALETTE['ink']} !important; }}

        .match-card {{
            background: {PALETTE['card']};
            border-left: 4px solid {PALETTE['accent']};
            border-radius: 6px;
            box-shadow: 0 1px 2px rgba(31, 41, 51, 0.08);
            padding: 0.8rem 1rem;
            margin-bottom: 0.6rem;
        }}
        .match-title {{ color: {PALETTE['ink']}; font-weight: 600; }}
        .match-path {{ float: right; color: {PALETTE['muted']}; font-size: 0.75rem; }}

        .domain-chip {{
            display: inline-block;
            border: 1px solid;
            border-radius: 999px;
            font-size: 0.72rem;
            padding: 0 0.45rem;
            margin: 0.25rem 0.25rem 0 0;
        }}

        .score-track {{ background: {PALETTE['track']}; height: 5px; margin-top: 0.45rem; }}
        .score-value {{ background: {PALETTE['accent']}; height: 5px; }}

        .goal-row {{ color: {PALETTE['ink']}; padding: 0.15rem 0; }}
        .goal-meta {{ color: {PALETTE['muted']}; font-size: 0.8rem; }}
    </style>
    """, unsafe_allow_html=True)


# =============================================================================
# ENGINE & RENDERING
# =============================================================================

@st.cache_resource
def load_engine():
    """Build the engine once and seed it with the configured population."""
    config = load_config(str(CONFIG_PATH))
    trees_path = project_root / config["data"]["trees_path"]
    if not trees_path.exists():
        st.error(f"Seed population not found at {trees_path}.")
        st.stop()

    engine = create_engine_from_config(config)
    for tree in load_goal_trees(str(trees_path)):
        engine.save_tree(tree.user_id, tree)
    engine.flush_embeddings(timeout=60)
    return engine


def render_header():
    st.title("Goal Matches")
    st.caption("People working toward goals like yours, ranked by how closely your priorities align.")


def render_tree(tree):
    """Render a goal tree as an indented outline with weights."""
    def walk(node, depth):
        st.markdown(
            f'<div class="goal-row" style="margin-left: {1.5 * depth}rem;">'
            f"<b>{node.name}</b> {domain_chip(node.domain)}"
            f'<div class="goal-meta">weight {node.weight:.2f} · {int(node.progress * 100)}% done</div>'
            f"</div>",
            unsafe_allow_html=True,
        )
        for child in tree.children_of(node.id):
            walk(child, depth + 1)

    for root in tree.root_nodes:
        walk(root, 0)


def render_matches(matches):
    if not matches:
        st.info("No compatible users found for this selection.")
        return

    for match in matches:
        score_percent = int(round(match.score * 100))
        chips = "".join(domain_chip(d) for d in match.matched_domains)
        st.markdown(f"""
        <div class="match-card">
            <span class="match-path">{match.path}</span>
            <div class="match-title">{match.candidate_user_id} · {score_percent}%</div>
            <div>{chips}</div>
            <div class="score-track"><div class="score-value" style="width: {max(2, score_percent)}%"></div></div>
        </div>
        """, unsafe_allow_html=True)


def render_feedback_form(engine, giver_id: str):
    """Let the current user grade one goal of another user."""
    st.markdown("### Give feedback")
    others = [t.user_id for t in engine.store.get_many(exclude_user_id=giver_id)]
    if not others:
        st.caption("No other users to give feedback to.")
        return

    receiver_id = st.selectbox("Receiver", others, key="fb_receiver")
    receiver = engine.get_tree(receiver_id)
    nodes = {f"{n.name} ({n.domain.value})": n.id for n in receiver.node_list}
    node_label = st.selectbox("Goal", list(nodes), key="fb_node")
    grade = st.radio("Grade", [g.value for g in FeedbackGrade], horizontal=True, key="fb_grade")
    comment = st.text_input("Comment (optional)", key="fb_comment")

    if st.button("Submit feedback", type="primary"):
        try:
            result = engine.submit_feedback({
                "giverId": giver_id,
                "receiverId": receiver_id,
                "goalNodeId": nodes[node_label],
                "grade": grade,
                "comment": comment or None,
            })
        except GoalMatchError as e:
            st.error(e.message)
            return
        if result.updated:
            st.success(f"Weight updated: {result.old_weight:.3f} → {result.new_weight:.3f}")
        else:
            st.warning(f"Feedback not applied ({result.outcome.value}).")


# =============================================================================
# PAGE
# =============================================================================

def main():
    """Main application entry point."""
    st.set_page_config(page_title="Goal Matches", layout="wide")
    inject_custom_css()

    engine = load_engine()
    render_header()

    trees = engine.store.get_many()
    user_ids = [t.user_id for t in trees]

    with st.sidebar:
        user_id = st.selectbox("You are", user_ids)
        domain_labels = st.multiselect("Only domains", [d.value for d in Domain])
        limit = st.slider("Results", 1, max(PAGE_SIZE, len(user_ids)), PAGE_SIZE)
        with st.expander("Population"):
            st.dataframe(goal_trees_to_frame(trees, ["owner_id", "domain", "name", "weight"]))

    col_tree, col_matches = st.columns([1, 1.4])

    with col_tree:
        st.markdown("### Your goals")
        render_tree(engine.get_tree(user_id))

    with col_matches:
        st.markdown("### Matches")
        try:
            matches = engine.get_matches(user_id, domain_filter=domain_labels or None, limit=limit)
        except GoalMatchError as e:
            st.error(e.message)
            st.stop()
        render_matches(matches)

        if matches:
            with st.expander("View as table"):
                st.dataframe(pd.DataFrame([m.to_dict() for m in matches]))

    st.markdown("---")
    render_feedback_form(engine, user_id)


if __name__ == "__main__":
    main()
