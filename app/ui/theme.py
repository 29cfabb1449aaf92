class _Theme:
    BACKGROUND_TOP = '#141A26'
    BACKGROUND_BOTTOM = '#101520'
    GRID = '#2A2E39'
    TEXT = '#B2B5BE'
    TEXT_MUTED = '#787B86'
    UP = '#26A69A'
    DOWN = '#EF5350'
    LINE = '#2962FF'
    BENCHMARK = '#F5A623'
    SESSION = '#434651'
    SELECTION_FILL = (41, 98, 255, 40)
    ERROR = '#EF5350'

    def change_color(self, value: float) -> str:
        return self.UP if value >= 0 else self.DOWN


theme = _Theme()
