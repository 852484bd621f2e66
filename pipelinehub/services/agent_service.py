"""AI agents — pipeline summarizer and win/loss analyzer.

Both agents work the same way: fetch the caller's role-filtered
opportunities, render them into a Markdown context block, and hand the
context plus the user's question to Claude.

Design rules:
  - Context builders are pure (rows in, text out) so they test without AI
  - Agents only ever see rows the caller is allowed to see
  - No key / upstream failure → AgentUnavailableError (router returns 503)
"""

from loguru import logger
from sqlalchemy.orm import Session

from ..models import User
from ..utils.claude_client import claude_text
from .forecast_service import weighted_amount
from .opportunity_service import fetch_for_role

SMART = "smart"

NO_PIPELINE_DATA = (
    "No opportunities data available in the database. "
    "Please sync Salesforce data first."
)

PIPELINE_SYSTEM = """You are a Pipeline Summarizer Agent. You analyze sales pipeline data and give actionable insights.

Use the Salesforce opportunity data below to answer questions about forecasts, pipeline health, at-risk deals, priorities, stages, accounts and owners.
Cite specific amounts and percentages. Format with Markdown. Be concise and include recommended actions when discussing problems.

{context}"""

WIN_LOSS_SYSTEM = """You are a Win/Loss Analyzer Agent for a sales team. You analyze closed deals to find patterns and actionable improvements.

{context}

Compare segments (industry, rating, country, type), be specific with numbers, and say so when the data is too thin to support a conclusion."""


class AgentUnavailableError(RuntimeError):
    """The LLM returned nothing (disabled, unconfigured or failing)."""


def _money(value: float) -> str:
    return f"${value:,.0f}"


def _amount(opp) -> float:
    return float(opp.amount or 0)


# ── Pipeline context ─────────────────────────────────────────────────


def build_pipeline_context(opportunities) -> str:
    opps = sorted(opportunities, key=_amount, reverse=True)
    if not opps:
        return NO_PIPELINE_DATA

    total = sum(_amount(o) for o in opps)
    weighted = sum(weighted_amount(o.amount, o.probability) for o in opps)
    avg_prob = sum(o.probability or 0 for o in opps) / len(opps)

    by_stage: dict[str, list] = {}
    for o in opps:
        by_stage.setdefault(o.stage_name or "Unknown", []).append(o)

    lines = [
        f"## Current Pipeline Data ({len(opps)} opportunities)",
        "",
        "### Summary",
        f"- Total Pipeline Value: {_money(total)}",
        f"- Weighted Forecast: {_money(weighted)}",
        f"- Average Probability: {avg_prob:.0f}%",
        "",
        "### Opportunities by Stage",
    ]
    for stage, stage_opps in by_stage.items():
        stage_total = sum(_amount(o) for o in stage_opps)
        lines.append(f"**{stage}** ({len(stage_opps)} deals, {_money(stage_total)})")
        for o in stage_opps[:5]:
            lines.append(
                f"- {o.name} ({o.account_name}) - {_money(_amount(o))} - {o.probability or 0}% probability"
            )

    lines += ["", "### Top Opportunities"]
    for i, o in enumerate(opps[:10], 1):
        lines += [
            f"{i}. **{o.name}** - {o.account_name}",
            f"   - Amount: {_money(_amount(o))}",
            f"   - Stage: {o.stage_name or 'Unknown'}",
            f"   - Probability: {o.probability or 0}%",
            f"   - Close Date: {o.close_date.isoformat() if o.close_date else 'Not set'}",
            f"   - Owner: {o.owner_name or 'Unassigned'}",
        ]

    risky = [o for o in opps if (o.probability or 0) < 50 or not o.close_date][:5]
    lines += ["", "### Risk Analysis"]
    for o in risky:
        close = o.close_date.isoformat() if o.close_date else "Not set"
        lines.append(f"- **{o.name}**: {o.probability or 0}% probability, Close: {close}")

    return "\n".join(lines)


# ── Win/loss context ─────────────────────────────────────────────────


def split_won_lost(opportunities) -> tuple[list, list]:
    """Won: stage mentions "won", or "closed" without "lost". Lost: mentions "lost"."""
    won, lost = [], []
    for o in opportunities:
        stage = (o.stage_name or "").lower()
        if "lost" in stage:
            lost.append(o)
        elif "won" in stage or "closed" in stage:
            won.append(o)
    return won, lost


def _segment_lines(title: str, won: list, lost: list, attr: str, default: str) -> list[str]:
    stats: dict[str, list[int]] = {}
    for bucket, idx in ((won, 0), (lost, 1)):
        for o in bucket:
            key = getattr(o, attr) or default
            stats.setdefault(key, [0, 0])[idx] += 1
    lines = [f"## Win/Loss by {title}"]
    for key, (w, lo) in stats.items():
        rate = w / (w + lo) * 100 if w + lo else 0
        lines.append(f"- {key}: Won {w}, Lost {lo} ({rate:.0f}% win rate)")
    return lines


def build_win_loss_context(opportunities) -> str:
    won, lost = split_won_lost(opportunities)
    closed = len(won) + len(lost)
    won_value = sum(_amount(o) for o in won)
    lost_value = sum(_amount(o) for o in lost)
    win_rate = len(won) / closed * 100 if closed else 0.0

    lines = [
        "# Win/Loss Analysis Context",
        "",
        "## Overall Metrics",
        f"- Total Closed Deals: {closed}",
        f"- Won: {len(won)} deals ({_money(won_value)})",
        f"- Lost: {len(lost)} deals ({_money(lost_value)})",
        f"- Win Rate: {win_rate:.1f}%",
        f"- Average Won Deal: {_money(won_value / len(won) if won else 0)}",
        f"- Average Lost Deal: {_money(lost_value / len(lost) if lost else 0)}",
        "",
    ]
    for title, attr, default in (
        ("Industry", "account_industry", "Unknown"),
        ("Account Rating", "account_rating", "Unrated"),
        ("Country", "account_billing_country", "Unknown"),
        ("Opportunity Type", "opportunity_type", "Unknown"),
    ):
        lines += _segment_lines(title, won, lost, attr, default) + [""]

    for title, bucket in (("Recent Won Deals", won), ("Recent Lost Deals", lost)):
        lines.append(f"## {title} (Last 5)")
        for o in bucket[:5]:
            lines.append(
                f"- {o.name} ({o.account_name or 'No Account'}): {_money(_amount(o))}"
                f" - {o.account_industry or 'No Industry'}"
            )
        lines.append("")

    return "\n".join(lines).rstrip()


# ── Agents ───────────────────────────────────────────────────────────


async def _ask(system: str, query: str, agent: str) -> str:
    answer = await claude_text(query, system=system, model_tier=SMART)
    if not answer:
        logger.warning("{} agent returned no answer", agent)
        raise AgentUnavailableError(f"{agent} agent is unavailable")
    return answer


async def ask_pipeline_agent(db: Session, user: User, query: str) -> str:
    rows = fetch_for_role(db, user.role, user.email)
    return await _ask(PIPELINE_SYSTEM.format(context=build_pipeline_context(rows)), query, "Pipeline")


async def ask_win_loss_agent(db: Session, user: User, query: str) -> str:
    rows = fetch_for_role(db, user.role, user.email)
    return await _ask(WIN_LOSS_SYSTEM.format(context=build_win_loss_context(rows)), query, "Win/loss")
