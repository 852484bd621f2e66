"""Forecast aggregation over already role-filtered opportunities.

Pure functions with no database access. The same numbers back the forecast
endpoint and the pipeline agent context.
"""

from datetime import date, timedelta

from ..config import settings

CLOSED_WON = "Closed Won"


def quarter_bounds(today: date) -> tuple[date, date]:
    """First and last day of the calendar quarter containing today."""
    first_month = (today.month - 1) // 3 * 3 + 1
    start = date(today.year, first_month, 1)
    if first_month == 10:
        return start, date(today.year, 12, 31)
    return start, date(today.year, first_month + 3, 1) - timedelta(days=1)


def weighted_amount(amount, probability) -> float:
    return float(amount or 0) * (probability or 0) / 100


def team_forecasts(opportunities, target_multiplier: float | None = None) -> list[dict]:
    """One entry per owner: pipeline, weighted, closed-won, target, deal count."""
    multiplier = settings.forecast_target_multiplier if target_multiplier is None else target_multiplier
    by_owner: dict[str, list] = {}
    for opp in opportunities:
        by_owner.setdefault(opp.owner_name or "Unknown", []).append(opp)

    teams = []
    for owner, opps in by_owner.items():
        pipeline = sum(float(o.amount or 0) for o in opps)
        teams.append({
            "teamName": f"{owner}'s Team",
            "teamLead": owner,
            "pipeline": pipeline,
            "weighted": sum(weighted_amount(o.amount, o.probability) for o in opps),
            "closed": sum(float(o.amount or 0) for o in opps if o.stage_name == CLOSED_WON),
            "target": pipeline * multiplier,
            "dealCount": len(opps),
        })

    teams.sort(key=lambda t: t["pipeline"], reverse=True)
    for i, team in enumerate(teams):
        team["id"] = f"team-{i}"
    return teams


def pipeline_by_stage(opportunities) -> list[dict]:
    stages: dict[str, dict] = {}
    for opp in opportunities:
        stage = opp.stage_name or "Unknown"
        entry = stages.setdefault(stage, {"stage": stage, "amount": 0.0, "count": 0})
        entry["amount"] += float(opp.amount or 0)
        entry["count"] += 1
    return list(stages.values())


def build_forecast(opportunities, today: date, target_multiplier: float | None = None) -> dict:
    """Team forecasts, stage breakdown and a quarter summary.

    Empty input gives no teams and a null summary.
    """
    opportunities = list(opportunities)
    teams = team_forecasts(opportunities, target_multiplier)
    if not teams:
        return {"teamForecasts": [], "pipelineByStage": [], "summary": None}

    total_pipeline = sum(t["pipeline"] for t in teams)
    total_weighted = sum(t["weighted"] for t in teams)
    total_target = sum(t["target"] for t in teams)
    q_start, q_end = quarter_bounds(today)
    variance = (total_weighted / total_target - 1) * 100 if total_target else 0.0

    return {
        "teamForecasts": teams,
        "pipelineByStage": pipeline_by_stage(opportunities),
        "summary": {
            "totalPipeline": total_pipeline,
            "totalWeighted": total_weighted,
            "totalTarget": total_target,
            "quarterStart": q_start.isoformat(),
            "quarterEnd": q_end.isoformat(),
            "variance": f"{variance:.1f}%",
        },
    }
