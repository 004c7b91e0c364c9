from textual_plotext import PlotextPlot
from textual.reactive import reactive

from quizsync.server.scoring import OptionStats


class _BasePlot(PlotextPlot):
    _pending: bool = False

    def replot(self) -> None:
        if self._pending:
            return
        self._pending = True

        def _do():
            self._pending = False
            self._draw()
            self.refresh()

        # run after the *next* refresh/layout
        self.call_after_refresh(_do)

    def on_resize(self) -> None:
        self.replot()


class AnswerHistogramPlot(_BasePlot):
    """Answer distribution for the open question."""
    labels = reactive(tuple(), init=False)  # ("A", "B", "C", "D")
    counts = reactive(tuple(), init=False)  # same length as labels
    correct = reactive(-1, init=False)      # revealed correct option, -1 while hidden

    def on_mount(self) -> None:
        self.labels = tuple()
        self.counts = tuple()
        self.replot()

    def show_stats(self, labels: list[str], stats: list[OptionStats], reveal: bool = False) -> None:
        counts = tuple(s.count for s in stats)
        correct = next((s.option_index for s in stats if s.is_correct), -1) if reveal else -1
        if tuple(labels) != self.labels:
            self.labels = tuple(labels)
        if counts != self.counts:
            self.counts = counts
        if correct != self.correct:
            self.correct = correct

    def watch_labels(self, _old: tuple, new: tuple) -> None:
        self.replot()

    def watch_counts(self, _old: tuple, new: tuple) -> None:
        self.replot()

    def watch_correct(self, _old: int, new: int) -> None:
        self.replot()

    def _draw(self) -> None:
        plt = self.plt
        plt.clear_data()
        plt.title("Answers" if self.correct < 0 else f"Answers - correct: {self.labels[self.correct]}")
        plt.xlabel("Choice")
        plt.ylabel("Count")
        if not self.labels or not self.counts:
            return
        plt.bar(list(self.labels), list(self.counts))
        plt.ylim(0, max(self.counts) + 1)


class PercentCorrectPlot(_BasePlot):
    percents = reactive(tuple(), init=False)  # one per finished question

    def on_mount(self) -> None:
        self.percents = tuple()
        self.replot()

    def set_series(self, percents: list[float]) -> None:
        series = tuple(max(0.0, min(100.0, float(p))) for p in percents)
        if series != self.percents:
            self.percents = series

    def watch_percents(self, _old, _new) -> None:
        self.replot()

    def _draw(self) -> None:
        plt = self.plt
        plt.clear_data()
        n = len(self.percents)
        xs = list(range(1, n + 1))
        if xs:
            plt.plot(xs, list(self.percents), marker="hd")
        plt.title("% Correct by Question")
        plt.xlabel("Question #")
        plt.ylabel("% Correct")
        plt.ylim(0, 100)
        plt.xlim(0, max(1, n + 1))
