#!/usr/bin/env python3
"""
VoxClone - Basic Usage Examples

Demonstrates:
1. Training a profile from a sample (simulated voice, no microphone needed)
2. Recording a profile through a capture device
3. Cloning text with speed / pitch / emotion
4. Listing and deleting profiles
"""

import tempfile

from voxclone import (
    AudioBuffer,
    AudioCapture,
    CloneRequest,
    MemoryStore,
    PipelineOrchestrator,
    SimulatedInput,
    VoxCloneConfig,
    save_audio,
)
from voxclone.capture import synth_voice


def main():
    print("=" * 70)
    print("VOXCLONE - BASIC USAGE EXAMPLES")
    print("=" * 70)

    cfg = VoxCloneConfig()
    cfg.training.epochs = 50
    capture = AudioCapture(SimulatedInput(), cfg.capture)

    states = []
    orch = PipelineOrchestrator(
        cfg,
        store=MemoryStore(),
        capture=capture,
        on_state=lambda workflow, state: states.append(f"{workflow}:{state.value}"),
    )

    # 1. Upload
    print("\n1. Training a profile from a 3 s sample...")
    sample = synth_voice(0, 3 * cfg.sample_rate, cfg.sample_rate, f0=130.0)
    alice = orch.upload_profile(AudioBuffer(sample, cfg.sample_rate), name="Alice", language="en").unwrap()
    print(f"   Profile:  {alice.id} ({alice.name})")
    print(f"   States:   {' -> '.join(states)}")

    # 2. Record
    print("\n2. Recording a profile (simulated microphone)...")
    states.clear()
    bob = orch.create_profile("Bob", duration_bound=2.0).unwrap()
    print(f"   Profile:  {bob.id} ({bob.duration:.1f}s)")
    print(f"   States:   {' -> '.join(states)}")

    # 3. Clone
    print("\n3. Cloning text...")
    for emotion in ("neutral", "happy", "sad"):
        request = CloneRequest("Hello there. This is a cloned voice.", alice.id, speed=1.0, pitch=1.1, emotion=emotion)
        audio = orch.clone(request).unwrap()
        print(f"   {emotion:<8} {audio.duration:.2f}s")

    out = orch.clone(CloneRequest("Hello there.", bob.id)).unwrap()
    path = save_audio(out, tempfile.gettempdir() + "/voxclone_bob.wav")
    print(f"   Wrote {path}")

    # 4. Registry
    print("\n4. Profiles:")
    for p in orch.list_profiles():
        print(f"   {p.id}  {p.name}")
    orch.delete_profile(bob.id)
    print(f"   After delete: {[p.name for p in orch.list_profiles()]}")

    print("\n" + "=" * 70)
    print("DONE")
    print("=" * 70)


if __name__ == "__main__":
    main()
