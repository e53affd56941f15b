"""
Example API client for the FieldCrypt Service.

This example sends plaintext query trees to a running FieldCrypt service
(``python main.py``) and prints the decoded results.
"""

import json

import requests


API_URL = "http://localhost:8000"


def run(model: str, action: str, **args: object) -> object:
    """Run one operation through the service and return its result."""
    response = requests.post(f"{API_URL}/query", json={"model": model, "action": action, "args": args})
    response.raise_for_status()
    return response.json()["result"]


def main() -> None:
    """Example usage of the FieldCrypt Service API."""
    print("FieldCrypt Service API Example\n")

    try:
        response = requests.get(f"{API_URL}/health")
        response.raise_for_status()
    except requests.exceptions.RequestException:
        print(f"API is not available at {API_URL}")
        return
    print(f"API is running in {response.json()['mode']} mode")

    try:
        user = run("User", "create", data={"email": "alice@example.com", "name": "Alice Liddell"})
        print("\nCreated user:")
        print(json.dumps(user, indent=2))

        users = run("User", "find_many", where={"name": {"equals": "alice liddell"}})
        print("\nUsers matching the name:")
        print(json.dumps(users, indent=2))
    except requests.exceptions.RequestException as e:
        print(f"\nRequest failed: {e}")


if __name__ == "__main__":
    main()
