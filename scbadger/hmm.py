import numpy as np
import pandas as pd
import scipy.special
import scipy.stats
import hmmlearn.base
import hmmlearn.hmm

from pandas import DataFrame

from scbadger.constants import EPS


def transition_matrix(n_states, t):
    """ Transition matrix with probability t of moving to each other state.

    Args:
        n_states (int): number of states
        t (float): per position probability of transitioning to each other state

    Returns:
        ndarray: (n_states, n_states) row stochastic matrix
    """
    if not 0 <= t * (n_states - 1) < 1:
        raise ValueError(f'invalid transition probability {t} for {n_states} states')

    tr_mat = np.full((n_states, n_states), float(t))
    np.fill_diagonal(tr_mat, 1. - t * (n_states - 1))

    return tr_mat


def default_startprob(n_states):
    """ Half the mass on the first (neutral) state, the rest spread evenly.
    """
    if n_states == 1:
        return np.ones(1)

    startprob = np.full(n_states, 0.5 / (n_states - 1))
    startprob[0] = 0.5

    return startprob


def neutral_startprob(n_states, t):
    """ Start probabilities of a sequence preceded by a neutral position.

    Entering a non neutral state at the first position costs the same as a
    transition, so calls are not extended to the start of a sequence for free.
    """
    return transition_matrix(n_states, t)[0]


def binomial_mixture_logpmf(successes, trials, probs):
    """ Log pmf of an equal weight mixture of binomials.

    Args:
        successes (ndarray): success counts
        trials (ndarray): trials, same shape as successes
        probs (float or list of float): success probability of each component

    Returns:
        ndarray: log pmf, same shape as successes
    """
    probs = np.clip(np.atleast_1d(np.asarray(probs, dtype=float)), EPS, 1. - EPS)
    successes = np.asarray(successes, dtype=float)[..., np.newaxis]
    trials = np.asarray(trials, dtype=float)[..., np.newaxis]
    ll = scipy.stats.binom.logpmf(successes, trials, probs)
    return scipy.special.logsumexp(ll, axis=-1) - np.log(probs.shape[0])


def pooled_burst_shape(burst, n_cells):
    """ Beta binomial shape for counts pooled over cells with independent allelic bursting.

    Pooling n cells each with allelic fraction drawn from Beta(burst, burst)
    divides the variance of the pooled fraction by n, matched by a Beta with
    shape ((2 * burst + 1) * n - 1) / 2.
    """
    n_cells = np.maximum(np.asarray(n_cells, dtype=float), 1.)
    return ((2. * burst + 1.) * n_cells - 1.) / 2.


class AllelicImbalanceHMM(hmmlearn.base.BaseHMM):
    """ Two state HMM over allele counts, balanced (state 0) or LOH (state 1).

    Observations are rows of (lesser allele count, total count, number of
    cells pooled).  Balanced counts follow a beta binomial accounting for
    allelic bursting in the pooled cells, LOH counts follow an equal mixture of
    binomials with probabilities pe and 1 - pe.  Parameters are fixed, the
    model is used for decoding only.
    """

    def __init__(self, pe=0.1, burst=0.5, algorithm='viterbi'):
        super().__init__(
            n_components=2,
            algorithm=algorithm,
            params='',
            init_params='')
        self.pe = pe
        self.burst = burst

    def _compute_log_likelihood(self, X):
        shape = pooled_burst_shape(self.burst, X[:, 2])
        return np.column_stack([
            scipy.stats.betabinom.logpmf(X[:, 0], X[:, 1], shape, shape),
            binomial_mixture_logpmf(X[:, 0], X[:, 1], [self.pe, 1. - self.pe]),
        ])


def _check_startprob(startprob, n_states):
    if startprob is None:
        return default_startprob(n_states)

    startprob = np.asarray(startprob, dtype=float)
    if startprob.shape != (n_states,):
        raise ValueError(f'startprob must have length {n_states}')

    return startprob / startprob.sum()


def decode_gaussian(values, means, sd, t, startprob=None):
    """ Viterbi decode a sequence with gaussian emissions of shared sd.

    Args:
        values (ndarray): observed sequence
        means (list of float): emission mean per state
        sd (float): emission standard deviation
        t (float): transition probability

    KwArgs:
        startprob (ndarray): initial state probabilities, default None for `default_startprob`

    Returns:
        ndarray: most likely state per position
    """
    values = np.asarray(values, dtype=float)
    n_states = len(means)

    if values.shape[0] == 0:
        return np.zeros(0, dtype=int)

    model = hmmlearn.hmm.GaussianHMM(
        n_components=n_states,
        covariance_type='diag',
        params='',
        init_params='')

    model.startprob_ = _check_startprob(startprob, n_states)
    model.transmat_ = transition_matrix(n_states, t)
    model.means_ = np.asarray(means, dtype=float)[:, np.newaxis]
    model.covars_ = np.full((n_states, 1), max(float(sd), EPS) ** 2)

    _, states = model.decode(values[:, np.newaxis], algorithm='viterbi')

    return states


def decode_allele(lesser, total, n_cells, pe, burst, t, startprob=None):
    """ Viterbi decode a sequence of pooled allele counts into balanced and LOH states.

    Args:
        lesser (ndarray): lesser allele counts per position
        total (ndarray): total counts per position
        n_cells (ndarray): number of cells pooled per position
        pe (float): probability of observing the lost allele in LOH
        burst (float): beta shape of single cell allelic fractions
        t (float): transition probability

    KwArgs:
        startprob (ndarray): initial state probabilities, default None for `default_startprob`

    Returns:
        ndarray: most likely state per position
    """
    lesser = np.asarray(lesser, dtype=float)

    if lesser.shape[0] == 0:
        return np.zeros(0, dtype=int)

    model = AllelicImbalanceHMM(pe=pe, burst=burst)
    model.startprob_ = _check_startprob(startprob, 2)
    model.transmat_ = transition_matrix(2, t)

    X = np.column_stack([lesser, np.asarray(total, dtype=float), np.asarray(n_cells, dtype=float)])
    _, states = model.decode(X, algorithm='viterbi')

    return states


def state_runs(states) -> DataFrame:
    """ Maximal runs of identical states.

    Args:
        states (ndarray): state per position

    Returns:
        DataFrame: runs with columns 'state', 'start_idx', 'end_idx' (inclusive) and 'length'
    """
    states = np.asarray(states)

    if states.shape[0] == 0:
        return pd.DataFrame(columns=['state', 'start_idx', 'end_idx', 'length'], dtype=int)

    change = np.where(states[1:] != states[:-1])[0] + 1
    starts = np.concatenate([[0], change])
    ends = np.concatenate([change, [states.shape[0]]]) - 1

    runs = pd.DataFrame({
        'state': states[starts],
        'start_idx': starts,
        'end_idx': ends,
    })
    runs['length'] = runs['end_idx'] - runs['start_idx'] + 1

    return runs
