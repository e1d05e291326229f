#!/usr/bin/env python3
"""
Vision Narration Server Mock Device
Plays the phone: streams camera frames, acts as the TTS engine and prints
the pipeline state the server reports.
"""

import argparse
import base64
import sys
import threading
import time
from pathlib import Path

import socketio
from colorama import Fore, Style, init

# Initialize colorama for cross-platform colored output
init(autoreset=True)

# Create Socket.IO client
sio = socketio.Client()

# Simulated speaking time per utterance
SPEAK_SECONDS = 1.5


def print_header(text):
    """Print a styled header."""
    print(f"\n{Fore.CYAN}{'=' * 70}")
    print(f"{Fore.CYAN}{text.center(70)}")
    print(f"{Fore.CYAN}{'=' * 70}{Style.RESET_ALL}\n")


def print_success(text):
    print(f"{Fore.GREEN}✓ {text}{Style.RESET_ALL}")


def print_error(text):
    print(f"{Fore.RED}✗ {text}{Style.RESET_ALL}")


def print_warning(text):
    print(f"{Fore.YELLOW}⚠  {text}{Style.RESET_ALL}")


def load_and_encode_image(image_path: str) -> str:
    """
    Load a local image file and convert it to a Base64 data URL.

    Args:
        image_path: Path to the image file

    Returns:
        str: Base64 encoded image with data URL prefix
    """
    try:
        with open(image_path, 'rb') as image_file:
            image_data = image_file.read()
    except OSError as e:
        print_error(f"Failed to load image {image_path}: {e}")
        sys.exit(1)

    base64_string = base64.b64encode(image_data).decode('utf-8')
    print_success(f"Loaded image: {image_path} ({len(image_data) / 1024:.1f} KB)")
    return f"data:image/jpeg;base64,{base64_string}"


@sio.event
def connect():
    print_success("Connected to Vision Narration Server")


@sio.event
def disconnect():
    print_warning("Disconnected from server")


@sio.event
def state_update(data):
    state = data.get('state')
    if state == 'running':
        audio = "🔊" if data.get('audio_enabled') else "🔇"
        print(f"{Fore.BLUE}[RUNNING {audio}] {data.get('status')}{Style.RESET_ALL}")
    elif state == 'error':
        kind = "recoverable" if data.get('recoverable') else "fatal"
        print_error(f"[ERROR {kind}] {data.get('message')}")
    else:
        print(f"{Fore.WHITE}[IDLE]{Style.RESET_ALL}")


def _simulate_speech(utterance_id: str):
    sio.emit('speech_progress', {'utterance_id': utterance_id, 'event': 'start'})
    time.sleep(SPEAK_SECONDS)
    sio.emit('speech_progress', {'utterance_id': utterance_id, 'event': 'done'})


@sio.event
def speak(data):
    print(f"{Fore.MAGENTA}{Style.BRIGHT}🗣  {data.get('text')}{Style.RESET_ALL}")
    threading.Thread(target=_simulate_speech, args=(data.get('utterance_id'),), daemon=True).start()


@sio.event
def stop_speech(data):
    if data and data.get('utterance_id'):
        print_warning(f"Speech stopped: {data['utterance_id']}")


@sio.event
def error(data):
    print_error(f"Server error: {data}")


def main():
    parser = argparse.ArgumentParser(
        description='Mock device for the Vision Narration Server',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python mock_device_client.py street.jpg
  python mock_device_client.py hallway.jpg exit_sign.jpg --fps 15 --duration 30
  python mock_device_client.py image.jpg --server http://192.168.1.100:8000 --mute
        """
    )
    parser.add_argument('images', nargs='+', help='Image files to stream in a loop')
    parser.add_argument('--server', default='http://localhost:8000',
                        help='Server URL (default: http://localhost:8000)')
    parser.add_argument('--fps', type=float, default=10.0,
                        help='Camera frame rate to simulate (default: 10)')
    parser.add_argument('--duration', type=float, default=20.0,
                        help='Seconds to stream (default: 20)')
    parser.add_argument('--mute', action='store_true', help='Start with audio disabled')
    parser.add_argument('--api-key', default=None, help='Send a provider API key at startup')
    args = parser.parse_args()

    for path in args.images:
        if not Path(path).exists():
            print_error(f"Image file not found: {path}")
            sys.exit(1)

    print_header("VISION NARRATION MOCK DEVICE")

    print(f"{Fore.CYAN}[1/3] Loading images...{Style.RESET_ALL}")
    frames = [load_and_encode_image(p) for p in args.images]

    print(f"\n{Fore.CYAN}[2/3] Connecting to server at {args.server}...{Style.RESET_ALL}")
    try:
        sio.connect(args.server)
    except Exception as e:
        print_error(f"Failed to connect to server: {e}")
        print_warning("Make sure the server is running: python server.py")
        sys.exit(1)

    sio.emit('tts_ready', {'ready': True})
    if args.api_key:
        sio.emit('set_api_key', {'api_key': args.api_key})
    sio.emit('start_pipeline', {'audio_enabled': not args.mute})

    print(f"\n{Fore.CYAN}[3/3] Streaming at {args.fps:.1f} fps for {args.duration:.0f}s...{Style.RESET_ALL}")
    interval = 1.0 / args.fps
    deadline = time.time() + args.duration
    sent = 0
    try:
        while time.time() < deadline:
            sio.emit('video_frame_streaming', {'frame': frames[sent % len(frames)]})
            sent += 1
            time.sleep(interval)
    except KeyboardInterrupt:
        print_warning("Interrupted")

    sio.emit('stop_pipeline')
    time.sleep(0.5)
    sio.disconnect()

    print_header("STREAM COMPLETE")
    print_success(f"Sent {sent} frames")


if __name__ == "__main__":
    main()
