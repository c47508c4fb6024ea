#!/usr/bin/env python3
"""Interactive host console for a running Challenge Picker API.

Usage:
    python play.py                         # host "host-1" against localhost:8000
    python play.py streamer-42             # act as a different host
    PICKER_API_URL=http://picker:8000 python play.py

Features:
    - Browse games and rulesets, create a session
    - Start / pause / resume / end it
    - Pick rules, watch the dashboard, count counter rules down
    - Rate a finished run and list past runs

Needs the API server running (uvicorn challenge_picker.main:app).
"""

import os
import sys

import requests

API_URL = os.environ.get("PICKER_API_URL", "http://localhost:8000").rstrip("/")
USER_HEADER = os.environ.get("PICKER_USER_HEADER", "X-User-Id")

# --- ANSI Colors ---
DIVIDER = "\033[90m" + "─" * 50 + "\033[0m"
RESET = "\033[0m"
DIM = "\033[90m"
BOLD = "\033[1m"
YELLOW = "\033[93m"
RED = "\033[91m"
GREEN = "\033[92m"
CYAN = "\033[96m"

STATUS_COLORS = {"setup": DIM, "active": GREEN, "paused": YELLOW, "completed": CYAN}


class ApiError(Exception):
    """Error envelope returned by the server."""

    def __init__(self, status_code: int, error: dict):
        self.status_code = status_code
        self.error = error
        super().__init__(describe_error(error))


def describe_error(error: dict) -> str:
    """One line for the console, with the wait time when the server sent one."""
    text = f"[{error.get('code', 'ERROR')}] {error.get('message', '')}".rstrip()
    wait = error.get("rateLimitSeconds") or error.get("cooldownSeconds")
    if wait:
        text += f" (retry in {wait}s)"
    return text


# =============================================================
# HTTP client
# =============================================================

class PickerClient:
    def __init__(self, base_url: str, user_id: str | None):
        self.base_url = base_url
        self.session = requests.Session()
        if user_id:
            self.session.headers[USER_HEADER] = user_id

    def call(self, method: str, path: str, **kwargs):
        resp = self.session.request(method, f"{self.base_url}{path}", timeout=10, **kwargs)
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            raise ApiError(resp.status_code, body.get("error") or {"message": resp.text})
        if resp.headers.get("content-type", "").startswith("text/plain"):
            return resp.text
        return resp.json()

    def games(self) -> list[dict]:
        return self.call("GET", "/api/catalog/games")

    def rulesets(self, game_id: int) -> list[dict]:
        return self.call("GET", f"/api/catalog/games/{game_id}/rulesets")

    def current(self) -> dict | None:
        try:
            return self.call("GET", "/api/playthrough/active")
        except ApiError as e:
            if e.error.get("code") == "NO_ACTIVE_PLAYTHROUGH":
                return None
            raise

    def create(self, game_id: int, ruleset_id: int, max_concurrent: int) -> dict:
        payload = {"gameId": game_id, "rulesetId": ruleset_id, "maxConcurrentRules": max_concurrent}
        return self.call("POST", "/api/playthroughs", json=payload)

    def transition(self, playthrough_id: str, action: str) -> dict:
        return self.call("PUT", f"/api/playthroughs/{playthrough_id}/{action}")

    def pick(self, playthrough_id: str, rule_id: int, level: int) -> dict:
        payload = {"ruleId": rule_id, "difficultyLevel": level}
        return self.call("POST", f"/api/playthroughs/{playthrough_id}/pick-rule", json=payload)

    def dashboard(self, playthrough_id: str) -> dict:
        return self.call("GET", f"/api/playthrough/{playthrough_id}/dashboard")

    def counter(self, action: str, index: int, amount: int) -> dict:
        return self.call("POST", f"/api/playthrough/counters/{action}", params={"index": index, "amount": amount})

    def feedback(self, playthrough_id: str, finished_run: bool, recommended: int) -> dict:
        payload = {"finishedRun": finished_run, "recommended": recommended}
        return self.call("PUT", f"/api/playthroughs/{playthrough_id}/feedback", json=payload)

    def completed(self) -> list[dict]:
        return self.call("GET", "/api/playthrough/completed")["playthroughs"]


# =============================================================
# Rendering
# =============================================================

def render_dashboard(data: dict) -> list[str]:
    """Dashboard payload as printable lines."""
    pt = data["playthrough"]
    color = STATUS_COLORS.get(pt["status"], "")
    lines = [
        f"{BOLD}{pt.get('gameName') or pt['gameId']} · {pt.get('rulesetName') or pt['rulesetId']}{RESET}",
        f"  Status: {color}{pt['status']}{RESET}   Max rules: {pt['maxConcurrentRules']}",
    ]

    rules = data.get("activeRules") or []
    if not rules:
        lines.append(f"  {DIM}(no active rules){RESET}")
    for rule in rules:
        extras = []
        if rule.get("timeRemaining") is not None:
            extras.append(f"{rule['timeRemaining']}s left")
        if rule.get("currentAmount") is not None:
            extras.append(f"{rule['currentAmount']} to go")
        tag = " [default]" if rule.get("isDefault") else ""
        suffix = f" ({', '.join(extras)})" if extras else ""
        lines.append(f"  • {rule['ruleName']}{tag}{suffix}")

    pick = data.get("pickStatus")
    if pick:
        color = GREEN if pick["canPick"] else YELLOW
        lines.append(f"  Pick: {color}{pick['message']}{RESET}")

    queue = data.get("queueStatus") or {}
    if queue.get("depth"):
        lines.append(f"  Queue: {queue['depth']} waiting")
    return lines


def print_lines(lines: list[str]):
    print()
    print(DIVIDER)
    for line in lines:
        print(line)
    print(DIVIDER)


def ask_int(prompt: str, default: int | None = None) -> int:
    while True:
        hint = f" [{default}]" if default is not None else ""
        raw = input(f"  {prompt}{hint}: ").strip()
        if not raw and default is not None:
            return default
        try:
            return int(raw)
        except ValueError:
            print(f"  {RED}Enter a number{RESET}")


def ask_feedback(client: PickerClient, playthrough_id: str):
    finished = input("  Did you finish the run? [y/N]: ").strip().lower() == "y"
    recommended = max(-1, min(1, ask_int("Recommend this ruleset? (-1, 0, 1)", 0)))
    client.feedback(playthrough_id, finished, recommended)
    print(f"  {DIM}Thanks!{RESET}")


# =============================================================
# Flows
# =============================================================

def choose_session(client: PickerClient) -> dict:
    current = client.current()
    if current is not None:
        print(f"\n  {YELLOW}Resuming your {current['status']} session {current['id']}{RESET}")
        return current

    games = client.games()
    print(f"\n{BOLD}Games{RESET}")
    for game in games:
        print(f"  {game['id']}. {game['name']}")
    game_id = ask_int("Game", games[0]["id"] if games else None)

    rulesets = client.rulesets(game_id)
    if not rulesets:
        raise ApiError(404, {"code": "RULESET_NOT_FOUND", "message": "No rulesets for this game"})
    print(f"\n{BOLD}Rulesets{RESET}")
    for ruleset in rulesets:
        print(f"  {ruleset['id']}. {ruleset['name']} {DIM}{ruleset.get('description', '')}{RESET}")
    ruleset_id = ask_int("Ruleset", rulesets[0]["id"])
    max_concurrent = ask_int("Max concurrent rules", 3)

    created = client.create(game_id, ruleset_id, max_concurrent)
    print(f"\n  {GREEN}Created session {created['id']}{RESET}")
    return created


def show_rules(session: dict):
    print(f"\n{BOLD}Rules{RESET}")
    for rule in session.get("rules", []):
        if rule["isDefault"] or not rule["isEnabled"]:
            continue
        print(f"  {rule['ruleId']}. {rule['ruleName']}")


COMMANDS = {
    "s": "start",
    "p": "pause",
    "r": "resume",
    "e": "end",
    "k": "pick a rule",
    "d": "dashboard",
    "-": "count a counter down",
    "+": "count a counter up",
    "l": "list rules",
    "h": "finished runs",
    "q": "quit",
}


def host_loop(client: PickerClient, session: dict):
    playthrough_id = session["id"]
    print()
    for key, label in COMMANDS.items():
        print(f"  {BOLD}{key}{RESET} {DIM}{label}{RESET}")

    while True:
        try:
            cmd = input(f"\n  {BOLD}>{RESET} ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        try:
            if cmd == "q":
                break
            elif cmd in ("s", "p", "r", "e"):
                summary = client.transition(playthrough_id, COMMANDS[cmd])
                print(f"  Status: {STATUS_COLORS.get(summary['status'], '')}{summary['status']}{RESET}")
                if summary["status"] == "completed":
                    print(f"  {DIM}Played for {summary.get('totalDurationSeconds') or 0}s{RESET}")
                    ask_feedback(client, playthrough_id)
                    break
            elif cmd == "k":
                result = client.pick(playthrough_id, ask_int("Rule id"), ask_int("Difficulty level", 1))
                color = GREEN if result["status"] == "activated" else YELLOW
                print(f"  {color}{result['message']}{RESET}")
            elif cmd == "d":
                print_lines(render_dashboard(client.dashboard(playthrough_id)))
            elif cmd in ("-", "+"):
                action = "decrement" if cmd == "-" else "increment"
                result = client.counter(action, ask_int("Counter #", 1), ask_int("Amount", 1))
                done = f" {GREEN}done!{RESET}" if result["completed"] else ""
                print(f"  {result['ruleName']}: {result['previousAmount']} → {result['currentAmount']}{done}")
            elif cmd == "l":
                show_rules(session)
            elif cmd == "h":
                for run in client.completed():
                    print(f"  {run['id'][:8]} {run.get('gameName') or run['gameId']} {DIM}{run.get('totalDurationSeconds') or 0}s{RESET}")
            elif cmd:
                print(f"  {RED}Unknown command '{cmd}'{RESET}")
        except ApiError as e:
            print(f"  {RED}{e}{RESET}")


# =============================================================
# Main
# =============================================================

def main():
    user_id = sys.argv[1] if len(sys.argv) > 1 else "host-1"
    client = PickerClient(API_URL, user_id)

    print()
    print(f"{BOLD}" + "=" * 50 + f"{RESET}")
    print(f"{BOLD}  Challenge Picker · host console{RESET}")
    print(f"  {DIM}{API_URL} as {user_id}{RESET}")
    print(f"{BOLD}" + "=" * 50 + f"{RESET}")

    session = choose_session(client)
    show_rules(session)
    host_loop(client, session)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print(f"\n\n{DIM}Bye.{RESET}")
    except ApiError as e:
        print(f"{RED}{e}{RESET}")
    except requests.exceptions.ConnectionError:
        print(f"{RED}Cannot reach {API_URL}, is the server running?{RESET}")
