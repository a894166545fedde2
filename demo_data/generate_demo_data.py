"""
Generate realistic demo records for Creator Financials.
Creates 2 finfluencers, 2 advisors, 1 event organizer and 1 ad vendor with
12 months of course sales, subscription commissions, event commissions,
ad billings and payout requests.

Run:  python generate_demo_data.py
Writes records.json next to this script; the app loads it when no remote
entity API or database is configured.
"""

import json
import os
import random
import uuid
from datetime import datetime, timedelta

# Seed for reproducibility
random.seed(42)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
TODAY = datetime(2025, 6, 15)

# ---------------------------------------------------------------------------
# Shared cast
# ---------------------------------------------------------------------------
FINFLUENCERS = [
    {"id": "fin_priya",  "name": "Priya Sharma"},
    {"id": "fin_rohan",  "name": "Rohan Mehta"},
]
ADVISORS = [
    {"id": "adv_kapoor", "name": "Kapoor Wealth Advisory"},
    {"id": "adv_iyer",   "name": "Iyer Capital"},
]
ORGANIZERS = [
    {"id": "org_summit", "name": "Market Summit Events", "commission_rate": 15},
]
VENDORS = [
    {"id": "ven_brokerx", "name": "BrokerX"},
]

COURSE_TITLES = [
    "Options Trading Masterclass", "Technical Analysis 101", "Mutual Fund Basics",
    "Swing Trading Blueprint", "Reading Balance Sheets",
]
EVENT_TITLES = [
    "Budget Day Live", "Q3 Earnings Watch", "Intraday Bootcamp", "IPO Season Roundtable",
]
BILLING_MODELS = ["cpc", "cpm", "flat_fee"]
PAYOUT_METHODS = ["bank_transfer", "upi", "paypal"]

COMMISSION_RATE = 0.20


def _id():
    return uuid.uuid4().hex


def _when(max_days_back=365):
    return (TODAY - timedelta(days=random.randint(0, max_days_back),
                              hours=random.randint(0, 23))).isoformat()


def _split(gross, rate=COMMISSION_RATE):
    platform = round(gross * rate, 2)
    return platform, round(gross - platform, 2)


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------

def generate_courses(records):
    for fin in FINFLUENCERS:
        for title in random.sample(COURSE_TITLES, 3):
            price = random.choice([999, 1499, 2499, 4999])
            course = {"id": _id(), "influencer_id": fin["id"], "title": title,
                      "price": price, "status": "published", "created_date": _when()}
            records["Course"].append(course)
            for _ in range(random.randint(5, 25)):
                platform, payout = _split(price)
                records["RevenueTransaction"].append({
                    "id": _id(), "influencer_id": fin["id"], "course_id": course["id"],
                    "gross_amount": price, "platform_commission": platform,
                    "influencer_payout": payout, "created_date": _when(),
                })
    print(f"  [COURSE] {len(records['Course'])} courses, "
          f"{len(records['RevenueTransaction'])} sales")


def generate_events(records):
    for org in ORGANIZERS:
        records["EventOrganizer"].append({"id": _id(), "user_id": org["id"],
                                          "name": org["name"],
                                          "commission_rate": org["commission_rate"]})
    hosts = [(o["id"], o["commission_rate"]) for o in ORGANIZERS]
    hosts += [(f["id"], 20) for f in FINFLUENCERS]
    for host_id, rate in hosts:
        for title in random.sample(EVENT_TITLES, 2):
            past = random.random() < 0.7
            event_date = TODAY + timedelta(days=random.randint(-200, -5) if past else random.randint(5, 90))
            event = {"id": _id(), "organizer_id": host_id, "title": title,
                     "event_date": event_date.isoformat(),
                     "status": "completed" if past else "approved"}
            records["Event"].append(event)
            if past:
                tickets = random.randint(20, 300)
                gross = tickets * random.choice([299, 499, 999])
                platform, payout = _split(gross, rate / 100.0)
                records["EventCommissionTracking"].append({
                    "id": _id(), "organizer_id": host_id, "event_id": event["id"],
                    "total_tickets_sold": tickets, "gross_revenue": gross,
                    "platform_commission_rate": rate, "platform_commission": platform,
                    "organizer_payout": payout,
                    "created_date": (event_date + timedelta(days=1)).isoformat(),
                })
    print(f"  [EVENT] {len(records['Event'])} events, "
          f"{len(records['EventCommissionTracking'])} commission rows")


def generate_advisors(records):
    for adv in ADVISORS:
        for _ in range(random.randint(10, 40)):
            fee = random.choice([499, 999, 1999])
            platform, payout = _split(fee)
            records["CommissionTracking"].append({
                "id": _id(), "advisor_id": adv["id"], "gross_amount": fee,
                "platform_fee": platform, "advisor_payout": payout,
                "transaction_date": _when(), "created_date": _when(),
            })
            records["AdvisorSubscription"].append({
                "id": _id(), "advisor_id": adv["id"],
                "status": random.choice(["active", "active", "expired"]),
                "created_date": _when(),
            })
        for _ in range(random.randint(3, 12)):
            records["AdvisorPost"].append({"id": _id(), "advisor_id": adv["id"],
                                           "created_date": _when()})
            records["AdvisorReview"].append({"id": _id(), "advisor_id": adv["id"],
                                             "rating": random.randint(3, 5),
                                             "created_date": _when()})
    print(f"  [ADV] {len(records['CommissionTracking'])} subscription commissions")


def generate_vendors(records):
    for ven in VENDORS:
        for n in range(3):
            campaign = {"id": _id(), "vendor_id": ven["id"], "name": f"Campaign {n + 1}",
                        "status": random.choice(["active", "completed"]), "created_date": _when()}
            records["AdCampaign"].append(campaign)
            for _ in range(random.randint(2, 6)):
                records["CampaignBilling"].append({
                    "id": _id(), "vendor_id": ven["id"], "campaign_id": campaign["id"],
                    "billing_model": random.choice(BILLING_MODELS),
                    "amount": round(random.uniform(5000, 50000), 2),
                    "payment_status": random.choice(["paid", "paid", "pending"]),
                    "created_date": _when(),
                })
    print(f"  [VEN] {len(records['CampaignBilling'])} billings")


def generate_payouts(records):
    creators = ([(f["id"], "finfluencer") for f in FINFLUENCERS]
                + [(a["id"], "advisor") for a in ADVISORS]
                + [(o["id"], "organizer") for o in ORGANIZERS])
    for entity_id, entity_type in creators:
        for status in ["processed", "processed", "approved", "pending", "rejected"]:
            method = random.choice(PAYOUT_METHODS)
            created = _when(300)
            payout = {
                "id": _id(), "user_id": entity_id, "entity_id": entity_id,
                "entity_type": entity_type, "status": status,
                "requested_amount": float(random.choice([1000, 2500, 5000, 7500])),
                "payout_method": method, "created_date": created,
                "upi_id": f"{entity_id}@upi" if method == "upi" else None,
                "paypal_email": f"{entity_id}@example.com" if method == "paypal" else None,
            }
            if status in ("processed", "rejected", "approved"):
                payout["processed_date"] = (datetime.fromisoformat(created) + timedelta(days=3)).isoformat()
            if status == "processed":
                payout["transaction_reference"] = f"UTR{random.randint(10**9, 10**10 - 1)}"
            records["PayoutRequest"].append(payout)
    print(f"  [PAY] {len(records['PayoutRequest'])} payout requests")


if __name__ == "__main__":
    print("Generating demo records for Creator Financials...\n")

    records = {name: [] for name in [
        "Course", "RevenueTransaction", "Event", "EventOrganizer", "EventCommissionTracking",
        "CommissionTracking", "AdvisorSubscription", "AdvisorPost", "AdvisorReview",
        "AdCampaign", "CampaignBilling", "PayoutRequest",
    ]}
    generate_courses(records)
    generate_events(records)
    generate_advisors(records)
    generate_vendors(records)
    generate_payouts(records)

    out_path = os.path.join(BASE_DIR, "records.json")
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(records, f, indent=1)

    total = sum(len(v) for v in records.values())
    print(f"\nDone! {total} records written to {out_path}")
    print("\nTo demo:")
    print("  1. Run the app: python app.py")
    print("  2. GET /api/statements/finfluencer/fin_priya?period=all_time")
    print("  3. Download /statements/finfluencer/fin_priya/download/xlsx?period=ytd")
