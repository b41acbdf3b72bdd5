"""Minimal demonstration of the completion pipeline."""

import json

from tutor_core.api.service import chat_completion, health_status

if __name__ == "__main__":
    question = "Can you explain how photosynthesis works?"
    result = chat_completion({"messages": [{"role": "user", "content": question}]})
    print("User:", question)
    if result["success"]:
        print(f"Tutor ({result['source']}):", result["choices"][0]["message"]["content"])
    else:
        print("Error:", result["error"], result["details"])
    print(json.dumps(health_status(), ensure_ascii=False, indent=2))
