"""
Seed demo incidents by POSTing varied reports to the /incidents API.

Run with the API already running (python run_api.py). Optionally set TRIAGE_API_URL in env.
Includes a burst of reports at one place ("North Bazaar") so the verification queue
shows the spam flag, and a couple of reports without coordinates so the default
position is used.
Usage: python seed_demo_incidents.py
"""

import os
import time

import httpx

TRIAGE_API_URL = (os.environ.get("TRIAGE_API_URL") or "http://localhost:8000").rstrip("/")

DEMO_REPORTS = [
    {"type": "Flood", "location": "Kondi Village (Sector 4)", "lat": 17.665, "lng": 75.91,
     "severity": "Critical", "panic": 0.85, "description": "Water entering homes"},
    {"type": "Fire", "location": "Railway Station Area", "lat": 17.645, "lng": 75.89,
     "severity": "High", "panic": 0.7, "description": "Near Railway Station"},
    {"type": "Collapse", "location": "Old Bridge, Sina River", "lat": 17.652, "lng": 75.915,
     "severity": "Medium", "panic": 0.5, "description": "Old Bridge strain"},
    {"type": "Medical", "location": "Civil Hospital Road", "severity": "High", "panic": 0.4,
     "sentiment": "Concerned", "transcription": "My father collapsed near the hospital gate."},
    # Burst at one location: more than 3 in an hour trips the spam flag
    {"type": "Fire", "location": "North Bazaar", "lat": 17.671, "lng": 75.905, "severity": "High", "panic": 0.9},
    {"type": "Fire", "location": "North Bazaar", "lat": 17.671, "lng": 75.905, "severity": "High", "panic": 0.8},
    {"type": "Fire", "location": "north bazaar", "lat": 17.671, "lng": 75.906, "severity": "Critical", "panic": 0.95},
    {"type": "Fire", "location": "North Bazaar ", "severity": "Medium", "panic": 0.3,
     "sentiment": "Panicked", "transcription": "Smoke everywhere in the bazaar!"},
]


def main():
    print(f"Seeding demo incidents via {TRIAGE_API_URL}/incidents")
    client = httpx.Client(timeout=30.0)
    try:
        for i, report in enumerate(DEMO_REPORTS):
            r = client.post(
                f"{TRIAGE_API_URL}/incidents",
                json=report,
                headers={"Content-Type": "application/json"},
            )
            if r.is_success:
                data = r.json()
                print(f"  [{i+1}/{len(DEMO_REPORTS)}] id={data.get('id')} type={data.get('type')} location={data.get('location')!r}")
            else:
                print(f"  [{i+1}/{len(DEMO_REPORTS)}] FAILED {r.status_code} {r.text[:200]}")
            time.sleep(0.3)
        r = client.get(f"{TRIAGE_API_URL}/verification", params={"lat": 17.6599, "lng": 75.9064})
        if r.is_success:
            queue = r.json()
            flagged = sum(1 for item in queue.get("items", []) if item.get("spamFlag"))
            print(f"Done. Verification queue: {len(queue.get('items', []))} items, {flagged} spam-flagged, "
                  f"{queue.get('geofenceCount')} within {queue.get('radiusKm')} km.")
    finally:
        client.close()


if __name__ == "__main__":
    main()
