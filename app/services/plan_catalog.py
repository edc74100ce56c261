"""
Static plan catalog: pricing, plan cards, limits and upgrade paths.

Pure lookups keyed by role, plan tier and billing duration. Prices are whole
rupees; the gateway works in paise, so callers multiply by 100.
A limit of -1 means unlimited.
"""
from __future__ import annotations

import copy
from typing import Any

ROLES: tuple[str, ...] = ("freelancer", "hiring")
PLAN_TYPES: tuple[str, ...] = ("free", "basic", "pro")
PAID_PLAN_TYPES: tuple[str, ...] = ("basic", "pro")
DURATIONS: tuple[str, ...] = ("monthly", "yearly", "lifetime")

UNLIMITED = -1


class UnknownPlanError(ValueError):
    pass


PRICING: dict[str, dict[str, dict[str, dict[str, int]]]] = {
    "freelancer": {
        "basic": {
            "monthly": {"price": 199, "originalPrice": 499, "discount": 60},
            "yearly": {"price": 1990, "originalPrice": 4990, "discount": 60},
            "lifetime": {"price": 9990, "originalPrice": 19990, "discount": 50},
        },
        "pro": {
            "monthly": {"price": 799, "originalPrice": 1499, "discount": 47},
            "yearly": {"price": 7990, "originalPrice": 14990, "discount": 47},
            "lifetime": {"price": 19990, "originalPrice": 39990, "discount": 50},
        },
    },
    "hiring": {
        "basic": {
            "monthly": {"price": 499, "originalPrice": 1999, "discount": 75},
            "yearly": {"price": 4990, "originalPrice": 19990, "discount": 75},
            "lifetime": {"price": 19990, "originalPrice": 49990, "discount": 60},
        },
        "pro": {
            "monthly": {"price": 2499, "originalPrice": 4999, "discount": 50},
            "yearly": {"price": 24990, "originalPrice": 49990, "discount": 50},
            "lifetime": {"price": 49990, "originalPrice": 99990, "discount": 50},
        },
    },
}

PLAN_LIMITS: dict[str, dict[str, dict[str, Any]]] = {
    "freelancer": {
        "free": {
            "maxApplications": 3,
            "maxProjects": 1,
            "maxPortfolioItems": 5,
            "canMessage": False,
            "verified": False,
        },
        "basic": {
            "maxApplications": 20,
            "maxProjects": 5,
            "maxPortfolioItems": 20,
            "canMessage": True,
            "verified": True,
            "platformFee": 5,
        },
        "pro": {
            "maxApplications": UNLIMITED,
            "maxProjects": UNLIMITED,
            "maxPortfolioItems": UNLIMITED,
            "canMessage": True,
            "verified": True,
            "platformFee": 3,
            "prioritySupport": True,
        },
    },
    "hiring": {
        "free": {
            "maxGigs": 1,
            "canMessage": False,
            "verified": False,
        },
        "basic": {
            "maxGigs": UNLIMITED,
            "canMessage": True,
            "verified": True,
            "platformFee": 5,
            "accessToVerifiedFreelancers": True,
        },
        "pro": {
            "maxGigs": UNLIMITED,
            "canMessage": True,
            "verified": True,
            "platformFee": 3,
            "accessToVerifiedFreelancers": True,
            "prioritySupport": True,
            "analytics": True,
        },
    },
}

_FREE_FEATURES = {
    "freelancer": [
        "Create Profile",
        "Upload Posts",
        "Upload Projects",
        "Explore Content",
        "Share Portfolio",
    ],
    "hiring": [
        "Create Profile",
        "First gig creation free",
        "Explore gigs",
        "Explore content",
    ],
}

_PLAN_COPY: dict[str, dict[tuple[str, str], dict[str, Any]]] = {
    "freelancer": {
        ("basic", "monthly"): {
            "description": "Essential features to boost your freelance career",
            "recommended": True,
            "bestDeal": False,
            "features": [
                "All Free Plan Features",
                "Access to client / brands",
                "Verified badge",
                "Smart Inbox",
                "Priority Visibility",
                "Secure Payments",
                "Complete Max 5 project/month",
                "Dedicated Support",
                "5% Platform Fee",
            ],
        },
        ("basic", "yearly"): {
            "description": "Essential features - Save with yearly billing",
            "bestDeal": True,
            "savings": "Save ₹1,398",
            "features": [
                "All Basic Monthly Features",
                "2 months free",
                "Priority support",
                "Annual billing discount",
            ],
        },
        ("basic", "lifetime"): {
            "description": "One-time payment for lifetime access",
            "popular": True,
            "features": [
                "All Basic Features Forever",
                "No recurring payments",
                "Lifetime updates",
                "Priority support",
            ],
        },
        ("pro", "monthly"): {
            "description": "Advanced features for professional freelancers",
            "features": [
                "All Basic Plan Features",
                "3% Platform Fees",
                "Unlimited Projects",
                "24/7 Call Support",
                "Free Access to Offline Events and Meetups",
                "Advanced portfolio features",
                "Priority in search results",
            ],
        },
        ("pro", "yearly"): {
            "description": "Professional features - Annual billing",
            "savings": "Save ₹1,600",
            "features": [
                "All Pro Monthly Features",
                "2 months free",
                "Premium support",
                "Annual billing discount",
            ],
        },
        ("pro", "lifetime"): {
            "description": "Ultimate freelancer plan with lifetime access",
            "enterprise": True,
            "features": [
                "All Pro Features Forever",
                "No recurring payments",
                "Lifetime updates",
                "Dedicated support",
                "Early access to new features",
            ],
        },
    },
    "hiring": {
        ("basic", "monthly"): {
            "description": "Essential features for hiring managers",
            "recommended": True,
            "bestDeal": False,
            "features": [
                "All Free Plan Features",
                "Unlimited gig creation",
                "Access to verified freelancers",
                "Verified brand badge",
                "Direct messaging & smart inbox",
                "Secure & transparent payment",
                "Priority brand support",
                "5% platform fee",
                "AI proposal evaluator (coming soon)",
            ],
        },
        ("basic", "yearly"): {
            "description": "Essential features for hiring managers - Save 75%",
            "bestDeal": True,
            "savings": "Save ₹10,998",
            "features": [
                "All Basic Monthly Features",
                "2 months free",
                "Priority support",
                "Annual billing discount",
            ],
        },
        ("basic", "lifetime"): {
            "description": "One-time payment for lifetime access",
            "popular": True,
            "features": [
                "All Basic Features Forever",
                "No recurring payments",
                "Lifetime updates",
                "Priority support",
            ],
        },
        ("pro", "monthly"): {
            "description": "Advanced features for growing businesses",
            "features": [
                "All Basic Plan Features",
                "3% Platform Fees",
                "Unlimited Projects",
                "24/7 Call Support",
                "Free Access to Offline Events and Meetups",
                "Advanced analytics",
                "Custom branding",
            ],
        },
        ("pro", "yearly"): {
            "description": "Advanced features - Annual billing",
            "savings": "Save ₹5,000",
            "features": [
                "All Pro Monthly Features",
                "2 months free",
                "Premium support",
                "Annual billing discount",
            ],
        },
        ("pro", "lifetime"): {
            "description": "Ultimate plan with lifetime access",
            "enterprise": True,
            "features": [
                "All Pro Features Forever",
                "No recurring payments",
                "Lifetime updates",
                "Dedicated account manager",
                "Custom integrations",
            ],
        },
    },
}

_UPGRADE_BENEFITS: dict[str, dict[str, list[str]]] = {
    "freelancer": {
        "basic": [
            "Access to client / brands",
            "Verified badge",
            "Smart Inbox",
            "Priority Visibility",
            "Secure Payments",
            "Complete Max 5 project/month",
        ],
        "pro": [
            "3% Platform Fees (vs 5%)",
            "Unlimited Projects",
            "24/7 Call Support",
            "Free Access to Offline Events and Meetups",
            "Advanced portfolio features",
            "Priority in search results",
        ],
    },
    "hiring": {
        "basic": [
            "Unlimited gig creation",
            "Access to verified freelancers",
            "Verified brand badge",
            "Direct messaging & smart inbox",
            "Priority brand support",
            "5% platform fee",
        ],
        "pro": [
            "3% Platform Fees (vs 5%)",
            "Unlimited Projects",
            "24/7 Call Support",
            "Free Access to Offline Events and Meetups",
            "Advanced analytics",
            "Custom branding",
        ],
    },
}

_COMPARISON_ROWS: list[dict[str, str]] = [
    {
        "feature": "Can join for free",
        "unJob": "✓",
        "upwork": "✓",
        "fiverr": "✓",
        "freelancer": "✓",
        "unstop": "✓",
    },
    {
        "feature": "Monthly Subscription Available",
        "unJob": "",
        "upwork": "✗",
        "fiverr": "✗",
        "freelancer": "₹430",
        "unstop": "₹999",
    },
    {
        "feature": "Commission on Earning",
        "unJob": "5%",
        "upwork": "10%-20%",
        "fiverr": "20%",
        "freelancer": "10% +",
        "unstop": "-",
    },
    {
        "feature": "Other Hidden Fees",
        "unJob": "None",
        "upwork": "Withdrawal",
        "fiverr": "Platform fee",
        "freelancer": "Contests, Disputes",
        "unstop": "-",
    },
    {
        "feature": "Can Create Content (Portfolio/Post)",
        "unJob": "Portfolio + Post+ Reel",
        "upwork": "Portfolio",
        "fiverr": "Portfolio",
        "freelancer": "Portfolio",
        "unstop": "Events/Posts",
    },
]


def get_plan_pricing(role: str, plan_type: str, duration: str) -> dict[str, int] | None:
    """Price entry for a paid plan, or None when the combination is not sold."""
    entry = PRICING.get(role, {}).get(plan_type, {}).get(duration)
    return dict(entry) if entry else None


def get_plan_limits(plan_type: str, role: str) -> dict[str, Any]:
    try:
        return dict(PLAN_LIMITS[role][plan_type])
    except KeyError:
        raise UnknownPlanError(f"No limits defined for {role} - {plan_type}")


def get_plans_for_role(role: str) -> list[dict[str, Any]]:
    plans: list[dict[str, Any]] = [
        {
            "id": "free",
            "name": "Free Plan",
            "description": "Get started with basic features",
            "planType": "free",
            "duration": "monthly",
            "originalPrice": 0,
            "price": 0,
            "recommended": False,
            "features": list(_FREE_FEATURES[role]),
        }
    ]

    for plan_type in PAID_PLAN_TYPES:
        for duration in DURATIONS:
            pricing = PRICING[role][plan_type][duration]
            extra = copy.deepcopy(_PLAN_COPY[role][(plan_type, duration)])
            card = {
                "id": f"{plan_type}-{duration}",
                "name": f"{plan_type.capitalize()} Plan ({duration.capitalize()})",
                "planType": plan_type,
                "duration": duration,
                "originalPrice": pricing["originalPrice"],
                "price": pricing["price"],
                "recommended": False,
            }
            card.update(extra)
            plans.append(card)

    return plans


def get_comparison_data() -> dict[str, list[dict[str, str]]]:
    data = {}
    for role in ROLES:
        rows = copy.deepcopy(_COMPARISON_ROWS)
        monthly = PRICING[role]["basic"]["monthly"]["price"]
        rows[1]["unJob"] = f"₹{monthly} (Early Access)"
        data[role] = rows
    return data


def get_upgrade_options(current_plan: str, role: str) -> list[dict[str, Any]] | None:
    """Higher tiers than ``current_plan``; None on the top tier or an unknown plan."""
    if current_plan not in PLAN_TYPES:
        return None

    index = PLAN_TYPES.index(current_plan)
    if index == len(PLAN_TYPES) - 1:
        return None

    benefits = _UPGRADE_BENEFITS.get(role, {})
    return [
        {
            "planType": plan,
            "benefits": list(benefits.get(plan, [])),
            "recommended": plan == "basic",
        }
        for plan in PLAN_TYPES[index + 1:]
    ]
