import json
import os

# Two synthetic page visits:
#  - acme-signals: popup record with a 20% discount in an RSC stream (should attribute)
#  - other-course: only a GraphQL feed poll about a different product (should come back empty)

out_dir = os.path.join(os.path.dirname(__file__), "..", "data", "raw")
os.makedirs(out_dir, exist_ok=True)


def entry(url, mime, text, started, method="GET", post=None):
    req = {"method": method, "url": url, "headers": []}
    if post is not None:
        req["postData"] = {"mimeType": "application/json", "text": post}
    return {
        "startedDateTime": started,
        "request": req,
        "response": {"status": 200, "headers": [], "content": {"mimeType": mime, "text": text}},
    }


rsc = ('0:["$","div",null,{"children":"'
       '{\\"popupPromoCode\\":{\\"code\\":\\"promo-784ede4b\\",\\"discountOff\\":\\"20%\\"},'
       '\\"route\\":\\"acme-signals\\"}"}]')

visit_a = {"log": {"version": "1.2", "entries": [
    entry("https://whop.com/acme-signals/", "text/html",
          "<html><script>{\"productId\":\"prod_A1\"}</script></html>", "2025-09-01T10:00:00.000Z"),
    entry("https://whop.com/acme-signals/?_rsc=1x2y", "text/x-component", rsc, "2025-09-01T10:00:01.000Z"),
]}}

feed = json.dumps({"data": {"messages": [{"text": "use promo-022d1f18 at checkout"}]}})
visit_b = {"log": {"version": "1.2", "entries": [
    entry("https://whop.com/other-course/", "text/html", "<html>no codes here</html>", "2025-09-01T11:00:00.000Z"),
    entry("https://whop.com/api/graphql", "application/json", feed, "2025-09-01T11:00:02.000Z",
          method="POST", post=json.dumps({"operationName": "Feed", "variables": {"route": "someone-else"}})),
]}}

for name, har in (("acme_signals.har", visit_a), ("other_course.har", visit_b)):
    path = os.path.join(out_dir, name)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(har, f, indent=2)
    print(f"Created {path}")
