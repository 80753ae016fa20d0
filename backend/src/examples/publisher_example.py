import asyncio
import sys

import httpx  # to install: pip install httpx

async def main(message: str):
    base_url = "http://localhost:3000"
    async with httpx.AsyncClient(base_url=base_url) as client:
        # publish over the plain GET trigger
        resp = await client.get("/chat", params={"message": message})
        print("GET /chat:", resp.status_code)
        # and over the JSON trigger, which reports how many streams got it
        resp = await client.post("/chat", json={"message": message})
        print("POST /chat:", resp.json())

if __name__ == "__main__":
    asyncio.run(main(" ".join(sys.argv[1:]) or "hello"))
