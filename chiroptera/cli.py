# -*- coding: utf-8 -*-
"""命令行入口"""

import argparse
import asyncio
import json
import logging
import sys

from .aggregator import Aggregator
from .audio_io import SimulatedAudioIO, SoundDeviceAudioIO
from .config import PRESETS, get_preset, load_profile
from .diagnostics import band_snr_db, plot_ping
from .exceptions import ChiropteraError
from .logging_utils import setup_logging
from .models import Direction
from .session import SessionManager


def _load_profile(args):
    if args.config:
        return load_profile(args.config)
    return get_preset(args.preset)


def _build_audio(args, profile):
    if args.simulate_distance is not None:
        return SimulatedAudioIO.for_distance(
            args.simulate_distance, profile.chirp.sample_rate_hz,
            speed_of_sound=profile.speed_of_sound,
            attenuation=0.3, noise_level=args.noise, seed=0)
    return SoundDeviceAudioIO(input_device=args.input_device,
                              output_device=args.output_device)


async def _run_pings(manager, profile, count, max_range, direction):
    aggregator = Aggregator.from_profile(profile)
    await manager.initialize(profile.chirp)
    info = await manager.start_session()
    pings = []
    try:
        for _ in range(count):
            ping = await manager.perform_ping(direction, max_range)
            pings.append(ping)
            aggregator.add(ping)
    finally:
        summary = await _stop(manager, info['sessionId'])
    return pings, aggregator.measurement(direction), summary


async def _stop(manager, session_id):
    """结束会话并释放资源；硬件故障时会话已被结束，只做清理"""
    summary = None
    if manager.session is not None:
        summary = await manager.stop_session(session_id)
    await manager.cleanup()
    return summary


def _cmd_devices(args):
    audio = SoundDeviceAudioIO()
    devices = audio.get_devices()
    capabilities = audio.query_capabilities()
    if args.json:
        print(json.dumps({'devices': devices, 'capabilities': capabilities.to_dict()},
                         ensure_ascii=False, indent=2))
        return 0
    print("输入设备:")
    for d in devices['input']:
        print(f"  [{d['id']}] {d['name']}")
    print("输出设备:")
    for d in devices['output']:
        print(f"  [{d['id']}] {d['name']}")
    print(f"采样率: {capabilities.min_sample_rate}-{capabilities.max_sample_rate}Hz, "
          f"超声: {capabilities.supports_ultrasonic}, "
          f"延迟: {capabilities.audio_latency_ms:.1f}ms")
    return 0


def _cmd_validate(args):
    profile = load_profile(args.profile)
    profile.chirp.validate()
    print(f"配置 {profile.name!r} 合法")
    return 0


def _cmd_ping(args):
    profile = _load_profile(args)
    manager = SessionManager(_build_audio(args, profile),
                             speed_of_sound=profile.speed_of_sound,
                             bandpass=args.simulate_distance is None)
    direction = Direction(*args.direction)
    pings, measurement, summary = asyncio.run(
        _run_pings(manager, profile, args.count, args.max_range, direction))

    if args.json:
        print(json.dumps({
            'pings': [p.to_dict() for p in pings],
            'measurement': measurement.to_dict(),
            'session': summary,
        }, ensure_ascii=False, indent=2))
        return 0

    for i, ping in enumerate(pings, 1):
        print(f"#{i:3d} 距离 {ping.distance_meters:.3f} m  置信度 {ping.confidence:.2f}  "
              f"ToF {ping.time_of_flight_micros:.0f} us  "
              f"SNR {ping.signal_quality.signal_to_noise_ratio_db:.1f} dB")
    print(f"聚合: {measurement.distance_meters:.3f} m ± {measurement.standard_deviation:.3f} m, "
          f"置信度 {measurement.confidence:.2f}, 可靠: {measurement.is_reliable}, "
          f"精度估计 {measurement.estimated_accuracy:.3f} m")
    return 0


def _cmd_diagnose(args):
    profile = _load_profile(args)
    manager = SessionManager(_build_audio(args, profile),
                             speed_of_sound=profile.speed_of_sound,
                             bandpass=args.simulate_distance is None)

    async def run():
        await manager.initialize(profile.chirp)
        info = await manager.start_session()
        try:
            ping = await manager.perform_ping(None, args.max_range)
            analysis = manager.engine.last_analysis
        finally:
            await _stop(manager, info['sessionId'])
        return ping, analysis

    ping, analysis = asyncio.run(run())
    chirp = profile.chirp
    snr = band_snr_db(analysis.echo, chirp.sample_rate_hz, chirp.frequency_start, chirp.frequency_end)
    plot_ping(analysis, ping, chirp.sample_rate_hz, save_path=args.out)
    print(f"距离 {ping.distance_meters:.3f} m, 置信度 {ping.confidence:.2f}, "
          f"频带信噪比 {snr:.1f} dB, 诊断图已保存到 {args.out}")
    return 0


def _add_session_arguments(cmd):
    cmd.add_argument("--preset", default="default", choices=sorted(PRESETS), help="Preset.")
    cmd.add_argument("--config", help="YAML profile, overrides --preset.")
    cmd.add_argument("--max-range", type=float, help="Max range in meters.")
    cmd.add_argument("--simulate-distance", type=float,
                     help="Use a synthetic echo at this distance instead of the sound card.")
    cmd.add_argument("--noise", type=float, default=0.0, help="Noise level for --simulate-distance.")
    cmd.add_argument("--input-device", type=int, help="Input device id.")
    cmd.add_argument("--output-device", type=int, help="Output device id.")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="chiroptera")
    parser.add_argument("--log-dir", default="logs", help="Log directory.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command")

    devices_cmd = sub.add_parser("devices")
    devices_cmd.add_argument("--json", action="store_true", help="JSON output.")

    validate_cmd = sub.add_parser("validate")
    validate_cmd.add_argument("profile", help="Path to YAML profile.")

    ping_cmd = sub.add_parser("ping")
    _add_session_arguments(ping_cmd)
    ping_cmd.add_argument("--count", type=int, default=5, help="Number of pings.")
    ping_cmd.add_argument("--direction", type=float, nargs=3, default=(0.0, 0.0, 1.0),
                          metavar=("X", "Y", "Z"), help="Ping direction.")
    ping_cmd.add_argument("--json", action="store_true", help="JSON output.")

    diagnose_cmd = sub.add_parser("diagnose")
    _add_session_arguments(diagnose_cmd)
    diagnose_cmd.add_argument("--out", default="ping_diagnostics.png", help="Figure path.")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)

    handlers = {
        "devices": _cmd_devices,
        "validate": _cmd_validate,
        "ping": _cmd_ping,
        "diagnose": _cmd_diagnose,
    }
    try:
        return handlers[args.command](args)
    except ChiropteraError as exc:
        print(f"错误 [{exc.code}]: {exc.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
