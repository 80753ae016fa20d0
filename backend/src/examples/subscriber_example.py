import asyncio
import websockets  # lightweight client; to install: pip install websockets

async def main():
    uri = "ws://localhost:3000/ws"
    async with websockets.connect(uri) as ws:
        # every published chat message arrives as one text frame
        print("Awaiting messages... (press Ctrl+C to exit)")
        try:
            while True:
                msg = await ws.recv()
                print("Received:", msg)
        except KeyboardInterrupt:
            print("Disconnected.")

if __name__ == "__main__":
    asyncio.run(main())
