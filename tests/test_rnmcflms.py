import numpy as np
import pytest

from algorithms.config import RNMCFLMSConfig
from algorithms.rnmcflms import (RNMCFLMS, cross_relation_gradient, init_rnmcflms,
                                 rnmcflms, run_rnmcflms)
from dataloader.generate_data import (generate_random_channels, generate_sensor_signals,
                                      generate_source)
from evaluation.npm import npm_db, smooth_npm
from evaluation.rnmcflms_demo import TWO_CHANNEL_H, demo_two_channel


def test_gradient_vanishes_for_true_channels():
    rng = np.random.default_rng(0)
    h = TWO_CHANNEL_H
    x, _ = generate_sensor_signals(h, rng.standard_normal(64))
    X = np.fft.fft(x[-8:], axis=0)
    H = np.fft.fft(3.0 * h, 8, axis=0)
    grad = cross_relation_gradient(X, H, filter_len=3)
    assert np.allclose(grad, 0.0, atol=1e-10)


@pytest.mark.parametrize("policy", ["cross", "total", "own"])
def test_estimate_shape_never_drifts(policy):
    rng = np.random.default_rng(1)
    cfg = RNMCFLMSConfig(num_channels=3, filter_len=8, frame_len=16, hop=4,
                         power_policy=policy)
    algorithm = RNMCFLMS(cfg)
    x = rng.standard_normal((200, 3))
    algorithm.initialize(x)
    for bb in range(50):
        h_hat = algorithm.process_block(x[bb * 4:(bb + 1) * 4])
        assert h_hat.shape == (8, 3)
        assert np.all(np.isfinite(h_hat))
    assert algorithm.num_blocks == 50
    assert algorithm.state == "steady"


def test_zero_input_leaves_estimate_unchanged():
    cfg = RNMCFLMSConfig(num_channels=3, filter_len=8, frame_len=16, hop=4)
    algorithm = RNMCFLMS(cfg)
    initial = algorithm.get_weights()
    h_hat, npm_curve = algorithm.process_signals(np.zeros((40, 3)))
    assert algorithm.num_blocks == 10
    assert np.array_equal(h_hat, initial)
    assert npm_curve.size == 0
    assert np.all(np.isfinite(algorithm.P_k_avg))


def test_silent_channel_is_not_updated():
    rng = np.random.default_rng(2)
    x = rng.standard_normal((120, 3))
    x[:, 1] = 0.0
    algorithm = RNMCFLMS(RNMCFLMSConfig(num_channels=3, filter_len=4, frame_len=8, hop=4))
    initial = algorithm.get_weights()
    h_hat, _ = algorithm.process_signals(x)
    assert np.array_equal(h_hat[:, 1], initial[:, 1])
    assert not np.allclose(h_hat[:, 0], initial[:, 0])


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_two_channel_cross_relation_converges(seed):
    h, h_hat, npm_curve = demo_two_channel(num_blocks=20000, seed=seed)
    assert npm_curve.shape == (20000,)
    assert npm_curve[-1] < -20.0

    alpha = np.dot(h.ravel(), h_hat.ravel()) / np.dot(h_hat.ravel(), h_hat.ravel())
    assert np.allclose(alpha * h_hat, h, atol=0.05)


def test_trailing_average_npm_decreases():
    _, _, npm_curve = demo_two_channel(num_blocks=600, seed=3)
    trailing = smooth_npm(npm_curve, win_len=20)
    assert trailing[-1] < trailing[0]
    assert np.mean(trailing[-50:]) < np.mean(trailing[:50])


def test_pure_tone_stays_finite():
    rng = np.random.default_rng(4)
    h = generate_random_channels(2, 8, rng=rng)
    s = generate_source(4000, "tone", tone_freq=0.125)
    x, _ = generate_sensor_signals(h, s)
    algorithm = RNMCFLMS(RNMCFLMSConfig(num_channels=2, filter_len=8, frame_len=16, hop=4))
    h_hat, npm_curve = algorithm.process_signals(x, h_true=h)
    assert algorithm.num_blocks == 1000
    assert np.all(np.isfinite(h_hat))
    assert np.all(np.isfinite(algorithm.P_k_avg))
    assert np.all(np.isfinite(npm_curve))


def test_functional_step_matches_engine():
    rng = np.random.default_rng(5)
    x = rng.standard_normal((16, 2))
    L, F, ns = 4, 8, 4

    algorithm = RNMCFLMS(RNMCFLMSConfig(num_channels=2, filter_len=L, frame_len=F, hop=ns,
                                        stepsize=0.3, forgetting=0.95))
    algorithm.initialize(x)
    h_engine = algorithm.process_block(x[:ns])

    h_hat, P_k_avg = init_rnmcflms(L, F, 2, x)
    xm = np.vstack((np.zeros((F - ns, 2)), x[:ns]))
    Xm = np.fft.fft(xm, axis=0)
    delta = np.mean(np.abs(Xm) ** 2)
    h_func, P_func = rnmcflms(xm, h_hat, P_k_avg, 0.3, 0.95, delta)

    assert np.allclose(h_func, h_engine)
    assert np.allclose(P_func, algorithm.P_k_avg)


def test_unit_norm_constraint():
    rng = np.random.default_rng(6)
    x = rng.standard_normal((400, 3))
    cfg = RNMCFLMSConfig(num_channels=3, filter_len=8, frame_len=16, hop=8, unit_norm=True)
    h_hat, _ = run_rnmcflms(x, cfg)
    assert np.isclose(np.linalg.norm(h_hat), 1.0)


def test_callback_stops_between_blocks():
    rng = np.random.default_rng(7)
    x = rng.standard_normal((100, 2))
    algorithm = RNMCFLMS(RNMCFLMSConfig(num_channels=2, filter_len=4, hop=2))
    seen = []

    def stop_after_five(bb, h_hat):
        seen.append(h_hat)
        return bb == 4

    h_hat, _ = algorithm.process_signals(x, callback=stop_after_five)
    assert algorithm.num_blocks == 5
    assert np.array_equal(h_hat, seen[-1])


def test_lifecycle_errors():
    algorithm = RNMCFLMS(RNMCFLMSConfig(num_channels=2, filter_len=4, hop=2))
    assert algorithm.state == "uninitialized"
    with pytest.raises(RuntimeError):
        algorithm.process_block(np.zeros((2, 2)))

    algorithm.initialize(np.ones((8, 2)))
    assert algorithm.state == "seeded"
    with pytest.raises(RuntimeError):
        algorithm.initialize(np.ones((8, 2)))

    algorithm.process_block(np.ones((2, 2)))
    final = algorithm.finish()
    assert algorithm.state == "terminated"
    assert final.shape == (4, 2)
    with pytest.raises(RuntimeError):
        algorithm.process_block(np.ones((2, 2)))

    algorithm.reset()
    assert algorithm.state == "uninitialized"
    assert algorithm.num_blocks == 0


def test_channel_count_mismatch():
    algorithm = RNMCFLMS(RNMCFLMSConfig(num_channels=3, filter_len=4, hop=2))
    with pytest.raises(ValueError):
        algorithm.process_signals(np.zeros((20, 2)))


def test_zero_seed_never_moves():
    rng = np.random.default_rng(8)
    x = rng.standard_normal((80, 2))
    cfg = RNMCFLMSConfig(num_channels=2, filter_len=4, hop=4, seed="zeros")
    h_hat, npm_curve = run_rnmcflms(x, cfg, h_true=np.ones((4, 2)))
    assert np.all(h_hat == 0.0)
    assert np.allclose(npm_curve, 0.0)


def test_noisy_random_channels_improve():
    rng = np.random.default_rng(9)
    h = generate_random_channels(3, 8, decay=0.4, rng=rng)
    s = generate_source(12000, "white", rng=rng)
    x, _ = generate_sensor_signals(h, s, snr_db=60.0, rng=rng)
    cfg = RNMCFLMSConfig(num_channels=3, filter_len=8, frame_len=16, hop=4, stepsize=0.5,
                         forgetting=0.9)
    _, npm_curve = run_rnmcflms(x, cfg, h_true=h)
    assert npm_curve[-1] < npm_db(h, RNMCFLMS(cfg).get_weights()) - 5.0


def test_reference_shape_checked_before_any_block():
    rng = np.random.default_rng(10)
    algorithm = RNMCFLMS(RNMCFLMSConfig(num_channels=2, filter_len=4, hop=2))
    with pytest.raises(ValueError):
        algorithm.process_signals(rng.standard_normal((40, 2)), h_true=np.ones((3, 2)))
    assert algorithm.state == "uninitialized"
    assert algorithm.num_blocks == 0
