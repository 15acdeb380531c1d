"""
Insight, risk and opportunity generation.

Pattern insights read the pattern-analysis result; budget insights read the
per-category budget rows. Both return plain dicts ready for JSON responses.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from finance_engine.analytics.budget import CategoryBudgetStatus, budget_compliance_score

PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}

PRIORITY_WEIGHTS = {"high": 10, "medium": 5, "low": 1}
TYPE_WEIGHTS = {"warning": 8, "info": 5, "success": 3}
CATEGORY_WEIGHTS = {
    "overspending": 10,
    "compliance": 8,
    "efficiency": 6,
    "savings": 5,
    "pattern": 4,
    "reallocation": 3,
}

MAX_BUDGET_INSIGHTS = 8


def generate_pattern_insights(analysis: Dict[str, Any]) -> List[Dict[str, Any]]:
    insights: List[Dict[str, Any]] = []

    seasonality = analysis["seasonal_patterns"]["seasonality"]
    if seasonality.get("detected"):
        insights.append(
            {
                "type": "seasonal",
                "priority": "medium",
                "title": "Seasonal Spending Pattern Detected",
                "description": f"Your spending shows {seasonality['pattern']} seasonal patterns",
                "impact": "Plan budget adjustments for seasonal variations",
                "confidence": seasonality.get("confidence", "low"),
            }
        )

    recurring = analysis["recurring_transactions"]
    if recurring["confirmed"] > 5:
        insights.append(
            {
                "type": "recurring",
                "priority": "high",
                "title": "Strong Recurring Transaction Pattern",
                "description": (
                    f"{recurring['confirmed']} recurring transactions identified, "
                    f"totaling {recurring['total_recurring_amount']:.2f}"
                ),
                "impact": "Consider automating budget tracking for recurring expenses",
                "confidence": "high",
            }
        )

    efficiency = analysis["budget_efficiency"].get("overall_efficiency")
    if efficiency is not None and efficiency < 0.7:
        insights.append(
            {
                "type": "efficiency",
                "priority": "high",
                "title": "Budget Efficiency Opportunity",
                "description": "Budget utilization is suboptimal with potential for improvement",
                "impact": "Review budget allocation and spending priorities",
                "confidence": "medium",
            }
        )

    sustainability = analysis["cashflow_sustainability"]
    if sustainability["trajectory"] != "insufficient-data" and sustainability["sustainability_score"] < 0.6:
        insights.append(
            {
                "type": "sustainability",
                "priority": "high",
                "title": "Cashflow Sustainability Risk",
                "description": "Current spending patterns may not be sustainable long-term",
                "impact": "Consider reducing expenses or increasing income",
                "confidence": "high",
            }
        )

    insights.sort(key=lambda i: PRIORITY_ORDER[i["priority"]], reverse=True)
    return insights


def identify_risk_factors(analysis: Dict[str, Any]) -> List[Dict[str, Any]]:
    risks: List[Dict[str, Any]] = []

    monthly_cycle = analysis["spending_cycles"]["monthly_cycle"]
    if monthly_cycle["trend"] == "increasing" and monthly_cycle.get("trend_rate", 0) > 10:
        risks.append(
            {
                "type": "trend",
                "severity": "high",
                "factor": "Rapidly increasing spending trend",
                "impact": "Budget overruns likely",
            }
        )

    if analysis["anomalies"]["count"] > 2:
        risks.append(
            {
                "type": "volatility",
                "severity": "medium",
                "factor": "High spending volatility detected",
                "impact": "Unpredictable cash flow",
            }
        )

    for factor in analysis["cashflow_sustainability"]["risk_factors"]:
        risks.append(
            {
                "type": "sustainability",
                "severity": "high",
                "factor": factor,
                "impact": "Long-term financial instability",
            }
        )
    return risks


def identify_opportunities(analysis: Dict[str, Any]) -> List[Dict[str, Any]]:
    opportunities: List[Dict[str, Any]] = []

    efficiency = analysis["budget_efficiency"]
    if efficiency.get("waste_areas"):
        opportunities.append(
            {
                "type": "budget-reallocation",
                "potential": "high",
                "description": "Reallocate unused budget to high-utilization categories",
                "categories": efficiency["waste_areas"],
                "estimated_savings": efficiency.get("optimization_potential", 0.0),
            }
        )

    confirmed = analysis["recurring_transactions"]["confirmed"]
    if confirmed > 3:
        opportunities.append(
            {
                "type": "automation",
                "potential": "medium",
                "description": "Automate tracking and budgeting for recurring transactions",
                "transactions": confirmed,
            }
        )

    strong = analysis["correlations"]["strong_correlations"]
    if strong:
        opportunities.append(
            {
                "type": "correlation-optimization",
                "potential": "medium",
                "description": "Optimize spending based on category correlations",
                "correlations": len(strong),
                "approach": "Bundle or separate correlated spending categories",
            }
        )
    return opportunities


def _label(row: CategoryBudgetStatus) -> str:
    return row.subcategory_name or row.subcategory_id


def generate_budget_insights(
    rows: Sequence[CategoryBudgetStatus],
    significant_variance: float = 100.0,
    large_variance_pct: float = 20.0,
    under_utilization_pct: float = 70.0,
) -> List[Dict[str, Any]]:
    """Ranked insights over per-category budget rows, at most eight."""
    budgeted = [row for row in rows if row.has_budget]
    if not budgeted:
        return []

    insights: List[Dict[str, Any]] = []
    over = sorted((row for row in budgeted if row.variance > 0), key=lambda row: row.variance, reverse=True)

    if not over:
        insights.append(
            {
                "type": "success",
                "priority": "medium",
                "category": "compliance",
                "title": "All Categories Within Budget",
                "description": "All budgeted categories are within their limits.",
                "action": "Consider setting more ambitious savings goals",
            }
        )
    else:
        critical = [row for row in over if row.variance > significant_variance]
        if critical:
            top = critical[0]
            insights.append(
                {
                    "type": "warning",
                    "priority": "high",
                    "category": "overspending",
                    "title": f"{_label(top)} Significantly Over Budget",
                    "description": (
                        f"This category is {top.variance:.2f} over budget "
                        f"({top.variance / top.budget_amount * 100:.0f}% over)"
                    ),
                    "action": "Review recent transactions and identify areas to reduce spending",
                    "subcategory_id": top.subcategory_id,
                }
            )
        if len(over) > 2:
            insights.append(
                {
                    "type": "warning",
                    "priority": "high",
                    "category": "pattern",
                    "title": "Multiple Categories Over Budget",
                    "description": f"{len(over)} categories are exceeding their budget limits",
                    "action": "Consider reviewing your overall budget allocation strategy",
                    "data": {"categories_count": len(over), "total_overage": sum(row.variance for row in over)},
                }
            )

    under_used = [
        row
        for row in budgeted
        if row.variance < -significant_variance and (row.utilization_percentage or 0) < under_utilization_pct
    ]
    if under_used:
        total_unused = sum(abs(row.variance) for row in under_used)
        insights.append(
            {
                "type": "info",
                "priority": "medium",
                "category": "savings",
                "title": "Significant Budget Savings Available",
                "description": f"{total_unused:.2f} unused across {len(under_used)} categories",
                "action": "Consider reallocating unused budget to other categories or savings goals",
                "data": {"total_unused": total_unused, "categories_count": len(under_used)},
            }
        )

    overspenders = [row for row in budgeted if row.variance > 0 and (row.variance_percentage or 0) > large_variance_pct]
    if len(overspenders) >= 2:
        insights.append(
            {
                "type": "warning",
                "priority": "medium",
                "category": "pattern",
                "title": "Consistent Overspending Pattern",
                "description": (
                    f"{len(overspenders)} categories exceed budget by more than {large_variance_pct:.0f}%"
                ),
                "action": "Consider if your budget allocations are realistic for your lifestyle",
            }
        )

    total_budgeted = sum(row.budget_amount for row in budgeted)
    total_spent = sum(row.actual_spent for row in budgeted)
    efficiency_rate = total_spent / total_budgeted * 100
    if efficiency_rate < 80:
        insights.append(
            {
                "type": "info",
                "priority": "low",
                "category": "efficiency",
                "title": "Low Budget Utilization",
                "description": f"Only {efficiency_rate:.0f}% of total budget is being used",
                "action": "Consider reducing budget amounts or reallocating to other financial goals",
            }
        )
    elif efficiency_rate > 105:
        insights.append(
            {
                "type": "warning",
                "priority": "high",
                "category": "efficiency",
                "title": "Budget Overrun Alert",
                "description": f"Spending {efficiency_rate:.0f}% of total budget",
                "action": "Immediate spending reduction needed to avoid budget deficit",
            }
        )
    elif efficiency_rate >= 95:
        insights.append(
            {
                "type": "success",
                "priority": "low",
                "category": "efficiency",
                "title": "Excellent Budget Efficiency",
                "description": f"Budget utilization at {efficiency_rate:.0f}%",
                "action": "Maintain current spending habits and budget allocations",
            }
        )

    compliance = budget_compliance_score(rows)
    if compliance["score"] < 50:
        insights.append(
            {
                "type": "warning",
                "priority": "high",
                "category": "compliance",
                "title": "Low Budget Compliance",
                "description": f"Only {compliance['score']}% of categories are within budget",
                "action": "Urgent budget review needed - consider adjusting limits or spending habits",
            }
        )
    elif 80 <= compliance["score"] < 100:
        insights.append(
            {
                "type": "success",
                "priority": "low",
                "category": "compliance",
                "title": "Good Budget Discipline",
                "description": f"{compliance['score']}% of categories are within budget limits",
                "action": "Keep up the good work and focus on the remaining categories",
            }
        )

    under_budget = [row for row in budgeted if row.variance < -significant_variance]
    if over and under_budget:
        total_overage = sum(row.variance for row in over)
        total_unused = sum(abs(row.variance) for row in under_budget)
        if total_unused >= total_overage * 0.8:
            insights.append(
                {
                    "type": "info",
                    "priority": "medium",
                    "category": "reallocation",
                    "title": "Budget Reallocation Opportunity",
                    "description": f"You have {total_unused:.2f} unused budget that could cover most overages",
                    "action": "Consider reallocating budget from under-used to over-spent categories",
                    "data": {
                        "total_overage": total_overage,
                        "total_under_used": total_unused,
                        "coverage_percentage": total_unused / total_overage * 100,
                    },
                }
            )

    return prioritize(insights)[:MAX_BUDGET_INSIGHTS]


def prioritize(insights: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    scored = [
        {
            **insight,
            "score": PRIORITY_WEIGHTS.get(insight["priority"], 1)
            + TYPE_WEIGHTS.get(insight["type"], 1)
            + CATEGORY_WEIGHTS.get(insight.get("category", ""), 1),
        }
        for insight in insights
    ]
    return sorted(scored, key=lambda insight: insight["score"], reverse=True)
