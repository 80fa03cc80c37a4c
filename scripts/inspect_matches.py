#!/usr/bin/env python3
"""Inspect stored match records for a manager's job.

Prints score, breakdown, risks, decision and status for every match the
manager's runs recorded, newest run first.

Usage:
    python scripts/inspect_matches.py <manager_user_id>
    python scripts/inspect_matches.py 1001 --run <run_id>

Requires:
    - Matches already recorded (run manager_matching_job for the manager).
"""

import argparse
import os
import sys

import psycopg2
from dotenv import load_dotenv
from psycopg2.extras import RealDictCursor

load_dotenv()


def get_connection():
    return psycopg2.connect(
        host=os.environ["POSTGRES_HOST"],
        port=int(os.environ.get("POSTGRES_PORT", 5432)),
        user=os.environ["POSTGRES_USER"],
        password=os.environ["POSTGRES_PASSWORD"],
        dbname=os.environ["POSTGRES_DB"],
    )


def inspect_matches(manager_user_id: int, run_id: str | None = None) -> None:
    conn = get_connection()
    cur = conn.cursor(cursor_factory=RealDictCursor)

    cur.execute(
        "SELECT status, job_summary FROM job_profiles WHERE manager_user_id = %s",
        (manager_user_id,),
    )
    job = cur.fetchone()
    if not job:
        print(f"  No job profile found for manager {manager_user_id}")
        cur.close()
        conn.close()
        sys.exit(1)

    query = """SELECT id, run_id, candidate_user_id, score, breakdown, reasons, decision,
                      status, created_at
               FROM matches WHERE manager_user_id = %s"""
    params: tuple = (manager_user_id,)
    if run_id:
        query += " AND run_id = %s"
        params += (run_id,)
    cur.execute(query + " ORDER BY created_at DESC, score DESC", params)
    rows = cur.fetchall()
    cur.close()
    conn.close()

    print("\n" + "=" * 80)
    print(f"  MATCHES FOR MANAGER: {manager_user_id}  (job {job['status'].lower()})")
    print(f"  {(job['job_summary'] or '-')[:76]}")
    print("=" * 80)
    if not rows:
        print("\n  No matches recorded for this manager.")
        print("=" * 80 + "\n")
        return

    current_run = None
    for row in rows:
        if row["run_id"] != current_run:
            current_run = row["run_id"]
            print(f"\n  run {current_run}  ({row['created_at']:%Y-%m-%d %H:%M})")
            print("-" * 80)
        decision = row["decision"] or {}
        print(
            f"  {row['score']:>3}  candidate {row['candidate_user_id']:<12} "
            f"{row['status'].lower():<20} notify={decision.get('notify_candidate')} "
            f"priority={decision.get('priority')}"
        )
        breakdown = row["breakdown"] or {}
        print("       " + "  ".join(f"{k}={v}" for k, v in breakdown.items()))
        for risk in (row["reasons"] or {}).get("risks", []):
            print(f"       ✗ {risk}")
        if decision.get("reason"):
            print(f"       → {decision['reason']}")
    print("=" * 80 + "\n")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Inspect stored matches for a manager")
    parser.add_argument("manager_user_id", type=int)
    parser.add_argument("--run", dest="run_id", default=None)
    args = parser.parse_args()
    inspect_matches(args.manager_user_id, args.run_id)
